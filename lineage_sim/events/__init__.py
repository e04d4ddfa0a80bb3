"""事件目录：草稿加载、稳定 id 编译、只读注册表与条件求值。"""

from .compiler import IdLock, compile_catalog, compile_event
from .registry import EventRegistry

__all__ = ["EventRegistry", "IdLock", "compile_catalog", "compile_event"]
