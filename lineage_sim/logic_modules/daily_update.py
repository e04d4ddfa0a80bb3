"""逐日的角色更新：生日、阶段变化、哀悼与健康衰减。"""

from __future__ import annotations

import logging
from typing import List

from ..core.entity_factory import get_life_phase
from ..core.interfaces import SimulationContext
from ..data_access.models import (
    Character,
    DisplayAdjective,
    EventRef,
    GameState,
    TickLogEntry,
)
from ..events.registry import EventRegistry

logger = logging.getLogger(__name__)

OLD_AGE_DEATH_EVENT_KEY = "milestone_death_old_age"

# (属性, 阈值, 候选形容词)
ADJECTIVE_RULES = (
    ("iq", 130, ("adjective_intelligent", "adjective_brilliant")),
    ("happiness", 85, ("adjective_happy", "adjective_joyful")),
    ("eq", 85, ("adjective_confident", "adjective_brave")),
    ("health", 90, ("adjective_healthy", "adjective_vigorous")),
)


def calculate_adjective_key(character: Character, ctx: SimulationContext) -> str:
    candidates: List[str] = []
    for stat, threshold, adjectives in ADJECTIVE_RULES:
        if character.stats.get(stat) > threshold:
            candidates.extend(adjectives)
    if not candidates:
        return "adjective_normal"
    return ctx.rng.choice(candidates)


def _celebrate_birthday(
    state: GameState, character: Character, ctx: SimulationContext
) -> bool:
    character.age += 1
    character.events_this_year = 0
    state.add_log(
        "log_birthday",
        {"name": character.name, "age": character.age},
        character_id=character.id,
        event_title_key="event_birthday_title",
    )
    character.display_adjective = DisplayAdjective(
        key=calculate_adjective_key(character, ctx), year=state.current_date.year
    )
    phase = get_life_phase(character.age, ctx.config)
    if phase == character.phase:
        return False
    character.phase = phase
    state.add_log(
        "log_new_phase",
        {"name": character.name, "phase": phase.value},
        character_id=character.id,
        event_title_key="event_new_phase_title",
    )
    return True


def _queue_old_age_death(
    state: GameState, character: Character, registry: EventRegistry
) -> bool:
    event = registry.get_by_key(OLD_AGE_DEATH_EVENT_KEY)
    if event is None:
        return False
    pending = list(state.event_queue)
    if state.active_event is not None:
        pending.append(state.active_event)
    if any(
        ref.character_id == character.id and ref.event_id == event.id for ref in pending
    ):
        return False
    state.event_queue.insert(0, EventRef(character_id=character.id, event_id=event.id))
    return True


def process_daily_updates(
    state: GameState, registry: EventRegistry, ctx: SimulationContext
) -> TickLogEntry:
    stage = ctx.config.life_stage
    today = state.current_date
    birthdays = 0
    phase_changes = 0
    death_events = 0

    for character in state.living_members():
        age = character.age
        if today.day == character.birth_date.day:
            birthdays += 1
            if _celebrate_birthday(state, character, ctx):
                phase_changes += 1

        if character.mourning_until_year is not None:
            if today.year > character.mourning_until_year:
                character.mourning_until_year = None
            else:
                character.stats.add("happiness", -stage.mourning_daily_happiness_loss)

        decay = 0.0
        if age > 50:
            decay += stage.health_decay_after_50
        if age > 70:
            decay += stage.health_decay_after_70
        if decay:
            character.stats.add("health", -decay)

        if character.stats.health <= 0 and _queue_old_age_death(state, character, registry):
            death_events += 1

    return TickLogEntry.at(
        today,
        "daily_updates",
        birthdays=birthdays,
        phase_changes=phase_changes,
        death_events=death_events,
    )
