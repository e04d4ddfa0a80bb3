"""事件调度：自然事件抽选、队列出队与年度里程碑扫描。

自然抽选的前置条件：全家冷却已过、没有进行中的事件、本次推进开始时
队列为空、没有阻塞性决策门。触发事件与里程碑事件直接进入队列，不受
冷却与每人每年事件上限的限制。
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core.interfaces import SimulationContext
from ..data_access.models import (
    Character,
    EventRef,
    GameEvent,
    GameState,
    TickLogEntry,
)
from ..events.conditions import evaluate_condition
from ..events.registry import EventRegistry

logger = logging.getLogger(__name__)


def has_completed(character: Character, event: GameEvent) -> bool:
    completed = character.completed_one_time_events
    return event.id in completed or event.key in completed


def is_event_eligible(
    event: GameEvent, state: GameState, character: Character, ctx: SimulationContext
) -> bool:
    """判断事件能否作为该角色的自然事件触发。概率条件在最后才掷骰。"""
    if event.milestone or event.trigger_only:
        return False
    if character.phase not in event.phases:
        return False
    if (
        event.allowed_relationship_statuses
        and character.relationship_status not in event.allowed_relationship_statuses
    ):
        return False
    if has_completed(character, event):
        return False
    return evaluate_condition(event.condition, state, character, ctx.rng)


def cooldown_days(state: GameState, ctx: SimulationContext) -> int:
    stage = ctx.config.life_stage
    if len(state.living_members()) <= stage.small_family_size:
        return stage.small_family_cooldown_days
    return stage.large_family_cooldown_days


def can_select_organic(state: GameState, queue_was_empty: bool) -> bool:
    cooldown = state.event_cooldown_until
    if cooldown is not None and state.current_date.is_before(cooldown):
        return False
    return (
        state.active_event is None
        and queue_was_empty
        and not state.has_blocking_gate()
    )


def select_organic_event(
    state: GameState, registry: EventRegistry, ctx: SimulationContext
) -> Optional[EventRef]:
    stage = ctx.config.life_stage
    candidates = [
        member
        for member in state.living_members()
        if member.events_this_year < stage.max_events_per_year
    ]
    if not candidates:
        return None
    character = ctx.rng.choice(candidates)
    events = registry.query(
        lambda event: is_event_eligible(event, state, character, ctx)
    )
    if not events:
        return None
    event = ctx.rng.choice(events)

    ref = EventRef(character_id=character.id, event_id=event.id)
    state.active_event = ref
    state.event_cooldown_until = state.current_date.add_days(
        cooldown_days(state, ctx), ctx.config.simulation.days_per_year
    )
    character.events_this_year += 1
    logger.debug(
        "Game %s fired event %s for %s", state.game_id, event.key, character.id
    )
    return ref


def drain_event_queue(state: GameState) -> Optional[EventRef]:
    """没有进行中的事件时，把队首事件设为当前事件。"""
    if state.active_event is not None or not state.event_queue:
        return None
    state.active_event = state.event_queue.pop(0)
    return state.active_event


def scan_milestones(
    state: GameState, registry: EventRegistry, ctx: SimulationContext
) -> int:
    """每个带条件的里程碑事件最多为一名在世角色排队。"""
    if state.has_blocking_gate():
        return 0
    queued = 0
    for event in registry.milestones():
        if event.trigger_only or event.condition is None:
            continue
        if any(ref.event_id == event.id for ref in state.event_queue):
            continue
        for character in state.living_members():
            if has_completed(character, event):
                continue
            if evaluate_condition(event.condition, state, character, ctx.rng):
                state.event_queue.append(
                    EventRef(character_id=character.id, event_id=event.id)
                )
                queued += 1
                break
    return queued


def process_scheduler(
    state: GameState,
    registry: EventRegistry,
    ctx: SimulationContext,
    queue_was_empty: bool,
) -> TickLogEntry:
    fired = None
    if can_select_organic(state, queue_was_empty):
        fired = select_organic_event(state, registry, ctx)
    dequeued = drain_event_queue(state)
    return TickLogEntry.at(
        state.current_date,
        "scheduler",
        fired=fired.event_id if fired else None,
        dequeued=dequeued.event_id if dequeued else None,
        queue_length=len(state.event_queue),
    )
