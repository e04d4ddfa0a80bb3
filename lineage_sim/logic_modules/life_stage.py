"""人生阶段流水线：年度检查、死亡与教育决策门。

年度检查只在没有学校、大学、职业、资质不足决策门且没有进行中的事件时执行：

1. 更新低幸福/低健康年数，连续两年低于阈值即死亡，并为其他在世成员排队哀悼事件；
2. 汇总本年度的学校决策门（6 岁 Idle、12 岁与 16 岁在读）；
3. 没有学校决策门时处理学业结束、19 岁升学与 60 岁退休。
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.entity_factory import university_education
from ..core.interfaces import SimulationContext
from ..data_access.models import (
    Character,
    CharacterStatus,
    EventRef,
    GameState,
    LifePhase,
    PendingCharacterChoice,
    PendingOptionsChoice,
    PendingSchoolChoice,
    TickLogEntry,
    clamp_stat,
)
from ..events.registry import EventRegistry
from .career import open_career_gate
from .family_business import vacate_business_slots

logger = logging.getLogger(__name__)

MOURNING_EVENT_KEY = "milestone_mourning"

# 入学年龄、入学前状态与对应的新阶段
SCHOOL_ENTRY = (
    (6, CharacterStatus.IDLE, LifePhase.ELEMENTARY),
    (12, CharacterStatus.IN_EDUCATION, LifePhase.MIDDLE_SCHOOL),
    (16, CharacterStatus.IN_EDUCATION, LifePhase.HIGH_SCHOOL),
)

SCHOOL_DURATION_YEARS = {
    LifePhase.MIDDLE_SCHOOL: 4,
    LifePhase.HIGH_SCHOOL: 3,
}

UNIVERSITY_DURATION_YEARS = 4


def release_character_gates(state: GameState, character_id: str) -> None:
    """清除指向该角色的所有决策门与排队事件。"""
    state.pending_school_choice = [
        gate for gate in state.pending_school_choice if gate.character_id != character_id
    ]
    state.pending_university_choice = [
        gate
        for gate in state.pending_university_choice
        if gate.character_id != character_id
    ]
    for attr in (
        "pending_major_choice",
        "pending_club_choice",
        "pending_career_choice",
        "pending_underqualified_choice",
        "pending_promotion",
    ):
        gate = getattr(state, attr)
        if gate is not None and gate.character_id == character_id:
            setattr(state, attr, None)
    state.event_queue = [
        ref for ref in state.event_queue if ref.character_id != character_id
    ]


def queue_mourning(
    state: GameState,
    deceased: Character,
    cause_key: str,
    registry: EventRegistry,
    ctx: SimulationContext,
) -> int:
    mourning = registry.get_by_key(MOURNING_EVENT_KEY)
    survivors = [
        member for member in state.living_members() if member.id != deceased.id
    ]
    until = state.current_date.year + ctx.config.life_stage.mourning_years - 1
    for member in survivors:
        member.mourning_until_year = max(member.mourning_until_year or 0, until)
        if mourning is not None:
            state.event_queue.append(
                EventRef(
                    character_id=member.id,
                    event_id=mourning.id,
                    replacements={
                        "deceasedName": deceased.name,
                        "causeOfDeath": cause_key,
                    },
                )
            )
    if mourning is None:
        logger.warning("Mourning event %s is missing from the registry", MOURNING_EVENT_KEY)
    return len(survivors)


def kill_character(
    state: GameState,
    character: Character,
    cause_key: str,
    registry: EventRegistry,
    ctx: SimulationContext,
) -> None:
    character.is_alive = False
    character.death_date = state.current_date.model_copy()
    vacate_business_slots(state, character.id)
    release_character_gates(state, character.id)
    queue_mourning(state, character, cause_key, registry, ctx)
    logger.debug(
        "Game %s: %s died (%s)", state.game_id, character.id, cause_key
    )


def _low_stat_death_keys(character: Character, years: int) -> Optional[tuple]:
    low_happiness = character.low_happiness_years >= years
    low_health = character.low_health_years >= years
    if low_happiness and low_health:
        return "log_death_low_happiness_and_health", "death_cause_low_happiness_and_health"
    if low_happiness:
        return "log_death_low_happiness", "death_cause_low_happiness"
    if low_health:
        return "log_death_low_health", "death_cause_low_health"
    return None


def _retire(state: GameState, character: Character) -> None:
    character.status = CharacterStatus.RETIRED
    character.career_track = None
    character.career_level = 0
    character.monthly_net_income = 0.0
    vacate_business_slots(state, character.id)
    state.add_log(
        "log_retired",
        {"name": character.name},
        character_id=character.id,
        event_title_key="event_retirement_title",
    )


def process_yearly_checks(
    state: GameState, registry: EventRegistry, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    if state.has_blocking_gate() or state.active_event is not None:
        return TickLogEntry.at(today, "yearly_checks_deferred")

    stage = ctx.config.life_stage
    deaths = 0
    for character in state.living_members():
        if character.stats.happiness < stage.low_stat_threshold:
            character.low_happiness_years += 1
        else:
            character.low_happiness_years = 0
        if character.stats.health < stage.low_stat_threshold:
            character.low_health_years += 1
        else:
            character.low_health_years = 0

        keys = _low_stat_death_keys(character, stage.low_stat_death_years)
        if keys is not None:
            log_key, cause_key = keys
            state.add_log(
                log_key,
                {"name": character.name},
                character_id=character.id,
                event_title_key="event_death_title",
            )
            kill_character(state, character, cause_key, registry, ctx)
            deaths += 1

    school_gates: List[PendingSchoolChoice] = []
    for character in state.living_members():
        for age, status, phase in SCHOOL_ENTRY:
            if character.age == age and character.status == status:
                school_gates.append(
                    PendingSchoolChoice(character_id=character.id, new_phase=phase)
                )
                break

    university_gates: List[PendingCharacterChoice] = []
    retired = 0
    if school_gates:
        state.pending_school_choice = school_gates
    else:
        career_gate_set = False
        for character in state.living_members():
            if (
                character.status_end_year is not None
                and today.year >= character.status_end_year
            ):
                character.status = CharacterStatus.IDLE
                character.status_end_year = None
                if character.age == stage.university_age:
                    university_gates.append(
                        PendingCharacterChoice(character_id=character.id)
                    )
                elif not career_gate_set:
                    open_career_gate(state, character, ctx)
                    career_gate_set = True
            elif (
                character.age == stage.university_age
                and character.status == CharacterStatus.IDLE
            ):
                university_gates.append(PendingCharacterChoice(character_id=character.id))
            elif (
                character.age == stage.retirement_age
                and character.status != CharacterStatus.RETIRED
            ):
                _retire(state, character)
                retired += 1
        if university_gates:
            state.pending_university_choice = university_gates

    return TickLogEntry.at(
        today,
        "yearly_checks",
        deaths=deaths,
        school_gates=len(school_gates),
        university_gates=len(university_gates),
        retired=retired,
    )


# ---------------------------------------------------------------------------
# 决策门处理
# ---------------------------------------------------------------------------


def _apply_effects(character: Character, effects: dict, skip_skill: bool = False) -> None:
    """iq 上限 200，其余属性上限 100，技能按 ``skip_skill`` 跳过或不设上限。"""
    for stat, change in effects.items():
        if stat == "skill":
            if not skip_skill:
                character.stats.skill = max(0.0, character.stats.skill + change)
            continue
        setattr(character.stats, stat, clamp_stat(stat, character.stats.get(stat) + change))


def _eligible_clubs(character: Character, ctx: SimulationContext) -> List[str]:
    eligible = []
    for club in ctx.config.catalog.clubs:
        if character.age < club.min_age:
            continue
        if any(character.stats.get(stat) < need for stat, need in club.min_stats.items()):
            continue
        eligible.append(club.id)
    return eligible


def choose_school(
    state: GameState, option_key: str, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    if not state.pending_school_choice:
        return TickLogEntry.at(today, "school_choice_missing")
    gate = state.pending_school_choice[0]
    character = state.members.get(gate.character_id)
    options = ctx.config.catalog.school_options.get(gate.new_phase.value, [])
    option = next((item for item in options if item.name_key == option_key), None)
    if option is None:
        return TickLogEntry.at(today, "school_unknown_option", option=option_key)
    state.pending_school_choice = state.pending_school_choice[1:]
    if character is None or not character.is_alive:
        return TickLogEntry.at(today, "school_choice_missing_character")

    _apply_effects(character, option.effects)
    character.phase = gate.new_phase
    character.status = CharacterStatus.IN_EDUCATION
    character.education = option.name_key
    duration = SCHOOL_DURATION_YEARS.get(gate.new_phase)
    if duration is not None:
        character.status_end_year = today.year + duration
    state.family_fund -= option.cost
    state.add_log(
        option.log_key,
        {"name": character.name},
        stat_changes=dict(option.effects),
        fund_change=-option.cost,
        character_id=character.id,
        event_title_key="event_school_choice_title",
    )

    if gate.new_phase == LifePhase.MIDDLE_SCHOOL:
        clubs = ctx.rng.shuffle(_eligible_clubs(character, ctx))
        clubs = clubs[: ctx.config.life_stage.max_club_options]
        state.pending_club_choice = (
            PendingOptionsChoice(character_id=character.id, options=clubs)
            if clubs
            else None
        )
    return TickLogEntry.at(
        today, "school_chosen", character_id=character.id, option=option_key,
        cost=option.cost,
    )


def choose_club(
    state: GameState, club_id: Optional[str], ctx: SimulationContext
) -> TickLogEntry:
    """加入社团；``club_id`` 为 None 或未知社团时视为跳过。未提供的社团被拒绝，决策门保持打开。"""
    today = state.current_date
    gate = state.pending_club_choice
    if gate is not None and club_id is not None and club_id not in gate.options:
        return TickLogEntry.at(
            today, "club_option_not_offered", character_id=gate.character_id, club=club_id
        )
    state.pending_club_choice = None
    character = state.members.get(gate.character_id) if gate else None
    club = next((item for item in ctx.config.catalog.clubs if item.id == club_id), None)
    if character is None or club is None:
        return TickLogEntry.at(today, "club_skipped")

    for stat, change in club.effects.items():
        value = round(max(0.0, character.stats.get(stat) + change))
        if stat != "skill":
            value = clamp_stat(stat, value)
        setattr(character.stats, stat, float(value))
    character.current_clubs.append(club.id)
    state.add_log(
        "log_joined_club",
        {"name": character.name, "clubName": club.name_key},
        character_id=character.id,
        event_title_key="event_club_join_title",
    )
    return TickLogEntry.at(today, "club_joined", character_id=character.id, club=club.id)


def _enter_workforce(
    state: GameState, character: Character, log_key: str, title_key: str,
    ctx: SimulationContext,
) -> None:
    character.status = CharacterStatus.IDLE
    character.phase = LifePhase.POST_GRADUATION
    open_career_gate(state, character, ctx)
    state.add_log(
        log_key, {"name": character.name}, character_id=character.id,
        event_title_key=title_key,
    )


def choose_university(state: GameState, go: bool, ctx: SimulationContext) -> TickLogEntry:
    today = state.current_date
    if not state.pending_university_choice:
        return TickLogEntry.at(today, "university_choice_missing")
    gate = state.pending_university_choice[0]
    state.pending_university_choice = state.pending_university_choice[1:]
    character = state.members.get(gate.character_id)
    if character is None or not character.is_alive:
        return TickLogEntry.at(today, "university_choice_missing_character")

    if go:
        majors = ctx.rng.shuffle([major.name_key for major in ctx.config.catalog.majors])
        state.pending_major_choice = PendingOptionsChoice(
            character_id=character.id,
            options=majors[: ctx.config.life_stage.max_major_options],
        )
        return TickLogEntry.at(today, "university_accepted", character_id=character.id)

    _enter_workforce(
        state, character, "log_graduated_enter_workforce",
        "event_university_decision_title", ctx,
    )
    return TickLogEntry.at(today, "university_declined", character_id=character.id)


def choose_major(state: GameState, major_key: str, ctx: SimulationContext) -> TickLogEntry:
    today = state.current_date
    gate = state.pending_major_choice
    character = state.members.get(gate.character_id) if gate else None
    major = ctx.config.catalog.major(major_key)
    if character is None or major is None:
        return TickLogEntry.at(today, "major_choice_invalid", major=major_key)
    if major_key not in gate.options:
        return TickLogEntry.at(
            today, "major_option_not_offered", character_id=character.id, major=major_key
        )

    if state.family_fund < major.cost:
        state.add_log(
            "log_major_unaffordable",
            {"name": character.name, "major": major.name_key},
            character_id=character.id,
            event_title_key="event_major_choice_title",
        )
        return TickLogEntry.at(
            today, "major_unaffordable", character_id=character.id, cost=major.cost
        )

    state.pending_major_choice = None
    _apply_effects(character, major.effects, skip_skill=True)
    character.major = major.name_key
    character.education = university_education(major.name_key)
    character.status = CharacterStatus.IN_EDUCATION
    character.status_end_year = today.year + UNIVERSITY_DURATION_YEARS
    state.family_fund -= major.cost
    state.add_log(
        "log_enrolled_university",
        {"name": character.name, "major": major.name_key},
        stat_changes={k: v for k, v in major.effects.items() if k != "skill"},
        fund_change=-major.cost,
        character_id=character.id,
        event_title_key="event_major_choice_title",
    )
    return TickLogEntry.at(
        today, "major_chosen", character_id=character.id, major=major.name_key,
        cost=major.cost,
    )


def abandon_university(state: GameState, ctx: SimulationContext) -> TickLogEntry:
    today = state.current_date
    gate = state.pending_major_choice
    state.pending_major_choice = None
    character = state.members.get(gate.character_id) if gate else None
    if character is None or not character.is_alive:
        return TickLogEntry.at(today, "major_choice_missing_character")
    _enter_workforce(
        state, character, "log_abandon_university_for_work",
        "event_major_choice_title", ctx,
    )
    return TickLogEntry.at(today, "university_abandoned", character_id=character.id)
