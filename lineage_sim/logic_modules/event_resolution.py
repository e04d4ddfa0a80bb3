"""当前事件的选项结算。

结算步骤依次为：动态结果抽签、属性与资金变化、去重排队中的全员事件、
记录一次性完成或生育冷却、执行动作、排队第一个成功的触发事件、
写入玩家日志、检查胜利条件。结算不会关闭事件，需要再调用
:func:`close_event`。
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from ..core.interfaces import SimulationContext
from ..data_access.models import (
    EffectOutcome,
    EventEffect,
    EventRef,
    EventTrigger,
    GameEvent,
    GameOverReason,
    GameState,
    LifePhase,
    TickLogEntry,
)
from ..events.conditions import evaluate_condition
from ..events.registry import EventRegistry
from .actions import dispatch_action

logger = logging.getLogger(__name__)

CHILDREN_EVENT_KEY = "milestone_children"
CHILD_CONCEIVED_EVENT_KEY = "milestone_child_conceived"
RETARGET_PARENTS = "parents"

# 只有成年后的事件才会改变技能
SKILL_PHASES = (LifePhase.POST_GRADUATION, LifePhase.RETIRED)


class ResolvedEffect:
    """合并了动态结果之后的效果视图。"""

    __slots__ = ("stat_changes", "fund_change", "log_key", "triggers", "action", "params")

    def __init__(self, effect: EventEffect, outcome: Optional[EffectOutcome]) -> None:
        self.stat_changes: Dict[str, float] = dict(effect.stat_changes)
        self.fund_change = effect.fund_change
        self.log_key = effect.log_key
        self.triggers: Tuple[EventTrigger, ...] = effect.triggers
        self.action = effect.action
        self.params = dict(effect.action_params)
        if outcome is not None:
            self.stat_changes.update(outcome.stat_changes)
            if outcome.fund_change:
                self.fund_change = outcome.fund_change
            self.log_key = outcome.log_key
            if outcome.triggers:
                self.triggers = outcome.triggers


def roll_outcome(effect: EventEffect, ctx: SimulationContext) -> Optional[EffectOutcome]:
    if not effect.outcomes:
        return None
    total = sum(outcome.weight for outcome in effect.outcomes)
    roll = ctx.rng.random() * total
    for outcome in effect.outcomes:
        roll -= outcome.weight
        if roll < 0:
            return outcome
    return effect.outcomes[-1]


def _apply_stats(state: GameState, event: GameEvent, character_id: str, changes) -> None:
    if event.apply_to_all:
        for member in state.living_members():
            for stat, delta in changes.items():
                member.stats.add(stat, delta)
        return
    character = state.members[character_id]
    for stat, delta in changes.items():
        if stat == "skill" and character.phase not in SKILL_PHASES:
            continue
        character.stats.add(stat, delta)


def _queue_trigger(
    state: GameState,
    character_id: str,
    effect: ResolvedEffect,
    registry: EventRegistry,
    ctx: SimulationContext,
) -> Optional[EventRef]:
    for trigger in effect.triggers:
        if not ctx.rng.chance(trigger.chance):
            continue
        event = registry.resolve(trigger.event_key)
        if event is None:
            logger.debug("Trigger target %s is not registered", trigger.event_key)
            continue
        target_id = character_id
        if trigger.retarget == RETARGET_PARENTS:
            character = state.members.get(character_id)
            parents = [
                state.members[pid]
                for pid in (character.parents_ids if character else [])
                if pid in state.members and state.members[pid].is_alive
            ]
            if parents:
                target_id = parents[0].id
        ref = EventRef(character_id=target_id, event_id=event.id)
        state.event_queue.append(ref)
        return ref
    return None


def choose_event_option(
    state: GameState,
    choice_id: str,
    registry: EventRegistry,
    ctx: SimulationContext,
) -> TickLogEntry:
    today = state.current_date
    active = state.active_event
    event = registry.resolve(active.event_id) if active else None
    choice = event.choice(choice_id) if event else None
    if active is None or event is None or choice is None:
        return TickLogEntry.at(today, "event_choice_invalid", choice_id=choice_id)
    character = state.members.get(active.character_id)
    if character is None:
        return TickLogEntry.at(
            today, "event_character_missing", character_id=active.character_id
        )
    if not evaluate_condition(choice.condition, state, character, ctx.rng):
        return TickLogEntry.at(today, "event_choice_unavailable", choice_id=choice_id)

    effect = ResolvedEffect(choice.effect, roll_outcome(choice.effect, ctx))
    _apply_stats(state, event, character.id, effect.stat_changes)
    if effect.fund_change:
        state.family_fund += effect.fund_change

    if event.apply_to_all:
        state.event_queue = [
            ref
            for ref in state.event_queue
            if registry.resolve(ref.event_id) is not event
        ]

    if event.key == CHILDREN_EVENT_KEY:
        years = ctx.config.life_stage.children_event_cooldown_years
        character.children_event_cooldown_until = today.add_days(
            years * ctx.config.simulation.days_per_year,
            ctx.config.simulation.days_per_year,
        )
    elif event.one_time or event.milestone:
        character.completed_one_time_events.append(event.id)

    if effect.action is not None:
        dispatch_action(effect.action, state, character.id, effect.params, registry, ctx)

    queued = _queue_trigger(state, character.id, effect, registry, ctx)

    if event.key != CHILD_CONCEIVED_EVENT_KEY:
        state.add_log(
            effect.log_key,
            {**active.replacements, "name": character.name},
            stat_changes=effect.stat_changes,
            fund_change=effect.fund_change or None,
            character_id=character.id,
            event_title_key=event.title_key,
        )

    victory = ctx.config.life_stage.victory_generation
    if any(member.generation >= victory for member in state.members.values()):
        state.game_over_reason = GameOverReason.VICTORY
        logger.info("Game %s reached victory", state.game_id)

    return TickLogEntry.at(
        today,
        "event_resolved",
        event_id=event.id,
        choice_id=choice.id,
        character_id=character.id,
        triggered=queued.event_id if queued else None,
    )


def close_event(state: GameState) -> TickLogEntry:
    active = state.active_event
    state.active_event = None
    return TickLogEntry.at(
        state.current_date,
        "event_closed",
        event_id=active.event_id if active else None,
    )
