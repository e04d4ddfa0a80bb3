"""把内容草稿编译为带稳定 id 的只读事件。

稳定 id 来自 ``content/id_lock.yaml``：事件按声明 id 查找，选项按
``"{draft_id}|{text_key}"`` 查找。查找失败时回退到声明 id / 锁键本身，
这是为兼容旧存档保留的分支，只记录 DEBUG 日志。
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from pydantic import BaseModel, Field

from ..data_access.models import EventChoice, EventDraft, GameEvent

logger = logging.getLogger(__name__)


class IdLock(BaseModel):
    """声明 key 到稳定 id 的锁表。"""

    events: Dict[str, str] = Field(default_factory=dict)
    choices: Dict[str, str] = Field(default_factory=dict)


def choice_lock_key(draft_id: str, text_key: str) -> str:
    return f"{draft_id}|{text_key}"


def compile_event(draft: EventDraft, id_lock: IdLock) -> GameEvent:
    event_id = id_lock.events.get(draft.id)
    if event_id is None:
        logger.debug("No stable id for event draft %s; using declared id", draft.id)
        event_id = draft.id

    choices: List[EventChoice] = []
    for choice in draft.choices:
        lock_key = choice_lock_key(draft.id, choice.text_key)
        choice_id = id_lock.choices.get(lock_key)
        if choice_id is None:
            logger.debug("No stable id for choice %s; using lock key", lock_key)
            choice_id = lock_key
        choices.append(
            EventChoice(
                id=choice_id,
                text_key=choice.text_key,
                effect=choice.effect,
                condition=choice.condition,
            )
        )

    return GameEvent(
        id=event_id,
        key=draft.id,
        title_key=draft.title_key,
        description_key=draft.description_key,
        phases=tuple(draft.phases),
        choices=tuple(choices),
        trigger_only=draft.trigger_only,
        milestone=draft.milestone,
        one_time=draft.one_time,
        apply_to_all=draft.apply_to_all,
        allowed_relationship_statuses=tuple(draft.allowed_relationship_statuses),
        condition=draft.condition,
    )


def compile_catalog(drafts: Iterable[EventDraft], id_lock: IdLock) -> List[GameEvent]:
    """编译全部草稿；同一声明 id 出现多次时后者覆盖前者，保留首次出现的位置。"""
    by_key: Dict[str, EventDraft] = {}
    for draft in drafts:
        by_key[draft.id] = draft
    return [compile_event(draft, id_lock) for draft in by_key.values()]
