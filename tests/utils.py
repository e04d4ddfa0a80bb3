"""Shared testing helpers: scripted random sources, character and state builders."""

from __future__ import annotations

import itertools
from typing import Iterable, List, Optional

from lineage_sim.core.interfaces import SimulationContext
from lineage_sim.data_access.models import (
    Character,
    CharacterStatus,
    EventDraft,
    GameState,
    Gender,
    LifePhase,
    SimDate,
    Stats,
)
from lineage_sim.events.registry import EventRegistry
from lineage_sim.utils.random_source import RandomSource
from lineage_sim.utils.settings import GameConfig, get_game_config


class ScriptedRandom:
    """按顺序返回预设值，耗尽后恒定返回 ``default``。"""

    def __init__(self, values: Iterable[float] = (), default: float = 0.5) -> None:
        self.values: List[float] = list(values)
        self.default = default
        self.calls = 0

    def __call__(self) -> float:
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return self.default


def fresh_config() -> GameConfig:
    return get_game_config().model_copy(deep=True)


def scripted_context(
    values: Iterable[float] = (),
    *,
    config: Optional[GameConfig] = None,
    default: float = 0.5,
) -> SimulationContext:
    counter = itertools.count(1)
    return SimulationContext(
        rng=RandomSource(ScriptedRandom(values, default)),
        config=config or fresh_config(),
        new_id=lambda: f"id-{next(counter)}",
    )


def make_character(char_id: str = "c1", **overrides) -> Character:
    fields = dict(
        id=char_id,
        name=char_id.title(),
        gender=Gender.MALE,
        birth_date=SimDate(day=1, year=2000),
        age=30,
        stats=Stats(iq=100, happiness=60, eq=60, health=80, skill=0),
        phase=LifePhase.POST_GRADUATION,
        status=CharacterStatus.IDLE,
    )
    fields.update(overrides)
    return Character(**fields)


def make_state(*members: Character, **overrides) -> GameState:
    fields = dict(
        game_id="game-test",
        current_date=SimDate(day=15, year=2030),
        family_fund=100000.0,
        content_version=get_game_config().simulation.content_version,
        event_cooldown_until=SimDate(day=1, year=2999),
    )
    fields.update(overrides)
    state = GameState(**fields)
    for member in members:
        state.members[member.id] = member
    state.total_members = len(members)
    return state


def _choice(text_key: str, **effect) -> dict:
    effect.setdefault("log_key", f"log_{text_key}")
    return {"text_key": text_key, "effect": effect}


def minimal_registry() -> EventRegistry:
    """只含哀悼、老死与一个普通成年事件的注册表，便于精确控制调度。"""
    drafts = [
        EventDraft.model_validate(
            {
                "id": "milestone_mourning",
                "milestone": True,
                "trigger_only": True,
                "apply_to_all": True,
                "title_key": "milestone_mourning_title",
                "description_key": "milestone_mourning_desc",
                "phases": [phase.value for phase in LifePhase],
                "choices": [_choice("mourning_ok", stat_changes={"happiness": -5})],
            }
        ),
        EventDraft.model_validate(
            {
                "id": "milestone_death_old_age",
                "milestone": True,
                "title_key": "milestone_death_old_age_title",
                "description_key": "milestone_death_old_age_desc",
                "phases": ["Retired"],
                "condition": {"old_age_start": 85, "old_age_rate": 0.02},
                "choices": [_choice("death_ok", action="DIE_OF_OLD_AGE")],
            }
        ),
        EventDraft.model_validate(
            {
                "id": "office_party",
                "title_key": "office_party_title",
                "description_key": "office_party_desc",
                "phases": ["PostGraduation"],
                "choices": [
                    _choice("party_join", stat_changes={"happiness": 5, "skill": 2}),
                    _choice("party_skip", stat_changes={"happiness": -1}),
                ],
            }
        ),
    ]
    return EventRegistry.from_drafts(drafts)
