"""只读事件注册表。

注册表在会话开始时构建一次，之后以显式句柄传入时钟、调度器与事件结算；
它不提供任何修改方法，扩展内容时通过 :meth:`EventRegistry.rebuild`
得到一个新的实例。
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Sequence, Tuple

from ..data_access.models import EventDraft, GameEvent
from .compiler import IdLock, compile_catalog

logger = logging.getLogger(__name__)


class EventRegistry:
    __slots__ = ("_events", "_by_id", "_by_key", "_drafts", "_id_lock")

    def __init__(
        self,
        events: Iterable[GameEvent],
        *,
        drafts: Sequence[EventDraft] = (),
        id_lock: Optional[IdLock] = None,
    ) -> None:
        ordered: Tuple[GameEvent, ...] = tuple(events)
        by_id = {}
        by_key = {}
        for event in ordered:
            if event.id in by_id:
                raise ValueError(f"Duplicate event id in registry: {event.id}")
            by_id[event.id] = event
            by_key[event.key] = event
        self._by_id: Mapping[str, GameEvent] = MappingProxyType(by_id)
        self._by_key: Mapping[str, GameEvent] = MappingProxyType(by_key)
        self._drafts: Tuple[EventDraft, ...] = tuple(drafts)
        self._id_lock = id_lock or IdLock()
        # _events 最后赋值，之后实例即为只读
        self._events = ordered

    @classmethod
    def from_drafts(
        cls, drafts: Sequence[EventDraft], id_lock: Optional[IdLock] = None
    ) -> "EventRegistry":
        lock = id_lock or IdLock()
        return cls(compile_catalog(drafts, lock), drafts=drafts, id_lock=lock)

    def __setattr__(self, name: str, value: object) -> None:
        if hasattr(self, "_events"):
            raise AttributeError("EventRegistry is read-only")
        object.__setattr__(self, name, value)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._by_id

    @property
    def events(self) -> Tuple[GameEvent, ...]:
        return self._events

    def get(self, event_id: str) -> Optional[GameEvent]:
        return self._by_id.get(event_id)

    def get_by_key(self, key: str) -> Optional[GameEvent]:
        return self._by_key.get(key)

    def resolve(self, id_or_key: str) -> Optional[GameEvent]:
        """先按稳定 id 查找，失败时按声明 key 查找（旧存档兼容分支）。"""
        event = self._by_id.get(id_or_key)
        if event is None:
            event = self._by_key.get(id_or_key)
            if event is not None:
                logger.debug("Resolved event %s through its declared key", id_or_key)
        return event

    def query(self, predicate: Callable[[GameEvent], bool]) -> Tuple[GameEvent, ...]:
        return tuple(event for event in self._events if predicate(event))

    def milestones(self) -> Tuple[GameEvent, ...]:
        return self.query(lambda event: event.milestone)

    def rebuild(self, extra_drafts: Sequence[EventDraft]) -> "EventRegistry":
        """追加草稿并返回新的注册表；已存在的事件 id 保持不变。"""
        known = {draft.id for draft in self._drafts} | set(self._by_key)
        for draft in extra_drafts:
            if draft.id in known:
                raise ValueError(f"Event {draft.id} is already registered")
            known.add(draft.id)
        drafts = self._drafts + tuple(extra_drafts)
        if self._drafts:
            return EventRegistry.from_drafts(drafts, self._id_lock)
        extra = compile_catalog(extra_drafts, self._id_lock)
        return EventRegistry(self._events + tuple(extra), drafts=drafts, id_lock=self._id_lock)
