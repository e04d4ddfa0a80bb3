"""读取 ``content/`` 下的事件草稿与稳定 id 锁表。"""

from __future__ import annotations

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import yaml

from ..data_access.models import EventDraft
from .compiler import IdLock, choice_lock_key
from .registry import EventRegistry

logger = logging.getLogger(__name__)

CONTENT_DIR = Path(__file__).resolve().parent / "content"
ID_LOCK_FILE = CONTENT_DIR / "id_lock.yaml"

# 与目录合并顺序一致；后出现的同名草稿覆盖先前的
CONTENT_FILES: Tuple[str, ...] = (
    "newborn.yaml",
    "elementary.yaml",
    "middle_school.yaml",
    "high_school.yaml",
    "university.yaml",
    "working_life.yaml",
    "retired.yaml",
    "relationships.yaml",
    "life.yaml",
    "pets.yaml",
    "milestones.yaml",
)


def _read_yaml(path: Path):
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def load_drafts(
    content_dir: Optional[Path] = None, files: Sequence[str] = CONTENT_FILES
) -> List[EventDraft]:
    base = content_dir or CONTENT_DIR
    drafts: List[EventDraft] = []
    for name in files:
        path = base / name
        if not path.exists():
            logger.warning("Event content file %s is missing", path)
            continue
        raw = _read_yaml(path) or []
        drafts.extend(EventDraft.model_validate(item) for item in raw)
    return drafts


def load_id_lock(path: Optional[Path] = None) -> IdLock:
    lock_path = path or ID_LOCK_FILE
    if not lock_path.exists():
        return IdLock()
    return IdLock.model_validate(_read_yaml(lock_path) or {})


def _generate_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_urlsafe(9)}"


def sync_id_lock(
    drafts: Sequence[EventDraft],
    existing: IdLock,
    generate_id: Callable[[str], str] = _generate_id,
) -> IdLock:
    """为新草稿分配稳定 id，已有条目原样保留。

    重复的事件 id 或重复的选项锁键视为内容错误，直接抛出 ``ValueError``。
    """
    errors: List[str] = []
    events: Dict[str, str] = {}
    choices: Dict[str, str] = {}
    for draft in drafts:
        if draft.id in events:
            errors.append(f"duplicate event id {draft.id!r}")
        events[draft.id] = existing.events.get(draft.id) or generate_id("ev")
        for choice in draft.choices:
            lock_key = choice_lock_key(draft.id, choice.text_key)
            if lock_key in choices:
                errors.append(f"duplicate choice lock key {lock_key!r}")
            choices[lock_key] = existing.choices.get(lock_key) or generate_id("ch")
    if errors:
        raise ValueError("; ".join(errors))
    return IdLock(
        events=dict(sorted(events.items())), choices=dict(sorted(choices.items()))
    )


def write_id_lock(lock: IdLock, path: Optional[Path] = None) -> Path:
    lock_path = path or ID_LOCK_FILE
    with lock_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(lock.model_dump(), handle, sort_keys=True, allow_unicode=True)
    return lock_path


@lru_cache(maxsize=1)
def load_default_registry() -> EventRegistry:
    """构建随包发布内容的注册表；进程内只构建一次。"""
    registry = EventRegistry.from_drafts(load_drafts(), load_id_lock())
    logger.info("Loaded %d events into the registry", len(registry))
    return registry
