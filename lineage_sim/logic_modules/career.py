"""职业选择与晋升模块。

职业选项生成规则：

- 与专业对应的职业路线无论属性是否达标都会出现，并固定排在第一位；
- 其余路线只在没有专业要求、或角色拥有大学学位时出现；
- 始终附带 ``internship`` 与 ``vocational`` 两个特殊选项；
- 没有任何路线可选时回退到 ``Unskilled``；
- 除固定项外随机排序，最多返回 ``max_career_options`` 个。

接受职业时的匹配规则：

- 专业匹配但属性不足：进入「资质不足」决策门（学徒或带惩罚入职）；
- 属性达标且专业匹配或无专业要求：直接入职，无惩罚；
- 有学位、专业不匹配但属性达标：固定 30% 晋升惩罚；
- 其他情况：惩罚为 ``min(0.9, 0.3 × 是否错配 + 属性缺口均值)``。
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.interfaces import SimulationContext
from ..data_access.models import (
    UNSKILLED_MAJOR,
    VOCATIONAL_DIPLOMA,
    Character,
    CharacterStatus,
    GameState,
    LifePhase,
    PendingOptionsChoice,
    PendingPromotion,
    PendingUnderqualifiedChoice,
    TickLogEntry,
)
from ..utils.settings import CareerTrack

logger = logging.getLogger(__name__)

JOB_OPTION = "job"
INTERNSHIP_OPTION = "internship"
VOCATIONAL_OPTION = "vocational"

MISMATCH_PENALTY = 0.30
MAX_PENALTY = 0.9


def generate_career_options(character: Character, ctx: SimulationContext) -> List[str]:
    ladder = ctx.config.catalog.career_ladder
    has_degree = bool(character.major)

    pinned: Optional[str] = None
    if has_degree:
        pinned = next(
            (
                key
                for key, track in ladder.items()
                if track.required_major == character.major
            ),
            None,
        )

    candidates = [
        key
        for key, track in ladder.items()
        if key != pinned and (not track.required_major or has_degree)
    ]
    if pinned is None and not candidates and UNSKILLED_MAJOR in ladder:
        candidates.append(UNSKILLED_MAJOR)
    candidates.extend([INTERNSHIP_OPTION, VOCATIONAL_OPTION])

    options = ctx.rng.shuffle(candidates)
    if pinned is not None:
        options.insert(0, pinned)
    return options[: ctx.config.life_stage.max_career_options]


def open_career_gate(
    state: GameState, character: Character, ctx: SimulationContext
) -> None:
    state.pending_career_choice = PendingOptionsChoice(
        character_id=character.id, options=generate_career_options(character, ctx)
    )


def stat_deficit_penalty(character: Character, track: CareerTrack) -> float:
    """IQ/EQ 缺口比例中非零项的平均值。"""
    ratios = []
    for stat, required in (("iq", track.iq_required), ("eq", track.eq_required)):
        deficit = max(0.0, required - character.stats.get(stat))
        if required > 0 and deficit > 0:
            ratios.append(deficit / required)
    return sum(ratios) / len(ratios) if ratios else 0.0


def is_stat_qualified(character: Character, track: CareerTrack) -> bool:
    return (
        character.stats.iq >= track.iq_required
        and character.stats.eq >= track.eq_required
    )


def is_mismatched(character: Character, track: CareerTrack) -> bool:
    return bool(track.required_major) and character.major != track.required_major


def has_higher_education(character: Character) -> bool:
    return bool(character.major) or character.education == VOCATIONAL_DIPLOMA


def _start_job(character: Character, track_key: str, penalty: float) -> None:
    character.career_track = track_key
    character.career_level = 0
    character.status = CharacterStatus.WORKING
    character.phase = LifePhase.POST_GRADUATION
    character.stats.skill = 0.0
    character.progression_penalty = penalty
    character.trainee_for_career = None
    character.months_in_current_job_level = 0


def choose_career(
    state: GameState, choice_key: str, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    gate = state.pending_career_choice
    character = state.members.get(gate.character_id) if gate else None
    if gate is None or character is None:
        return TickLogEntry.at(today, "career_choice_missing_character")
    if choice_key not in gate.options:
        logger.debug("Rejecting career option %s not offered to %s", choice_key, character.id)
        return TickLogEntry.at(
            today, "career_option_not_offered", character_id=character.id, option=choice_key
        )

    if choice_key == JOB_OPTION:
        open_career_gate(state, character, ctx)
        return TickLogEntry.at(
            today, "career_options_regenerated", character_id=character.id
        )

    economy = ctx.config.economy
    name = {"name": character.name}
    title_key = "event_career_choice_title"

    if choice_key == INTERNSHIP_OPTION:
        state.pending_career_choice = None
        character.status = CharacterStatus.INTERNSHIP
        character.status_end_year = today.year + economy.internship_duration_years
        state.add_log(
            "log_started_internship", name, character_id=character.id,
            event_title_key=title_key,
        )
        return TickLogEntry.at(today, "career_internship", character_id=character.id)

    if choice_key == VOCATIONAL_OPTION:
        state.pending_career_choice = None
        character.status = CharacterStatus.VOCATIONAL_TRAINING
        character.status_end_year = today.year + economy.vocational_duration_years
        character.education = VOCATIONAL_DIPLOMA
        state.family_fund -= economy.vocational_cost
        state.add_log(
            "log_enrolled_vocational", name, character_id=character.id,
            event_title_key=title_key, fund_change=-economy.vocational_cost,
        )
        return TickLogEntry.at(
            today, "career_vocational", character_id=character.id,
            cost=economy.vocational_cost,
        )

    track = ctx.config.catalog.career_ladder.get(choice_key)
    if track is None or not track.levels:
        logger.debug("Ignoring unknown career option %s", choice_key)
        return TickLogEntry.at(today, "career_unknown_option", option=choice_key)

    state.pending_career_choice = None
    major_match = bool(track.required_major) and character.major == track.required_major
    qualified = is_stat_qualified(character, track)

    if major_match and not qualified:
        state.pending_underqualified_choice = PendingUnderqualifiedChoice(
            character_id=character.id, career_track_key=choice_key
        )
        return TickLogEntry.at(
            today, "career_underqualified_gate", character_id=character.id,
            track=choice_key,
        )

    replacements = {"name": character.name, "title": track.levels[0].title_key}
    if qualified and (major_match or not track.required_major):
        penalty = 0.0
        message_key = "log_found_job"
        character.months_unemployed = 0
    elif qualified and character.major:
        penalty = MISMATCH_PENALTY
        message_key = "log_accepted_mismatched_job"
    else:
        mismatch = MISMATCH_PENALTY if track.required_major else 0.0
        penalty = min(MAX_PENALTY, mismatch + stat_deficit_penalty(character, track))
        message_key = (
            "log_accepted_severely_underqualified_job"
            if mismatch > 0
            else "log_accepted_penalized_job"
        )

    _start_job(character, choice_key, penalty)
    state.add_log(
        message_key, replacements, character_id=character.id, event_title_key=title_key
    )
    return TickLogEntry.at(
        today, "career_started", character_id=character.id, track=choice_key,
        penalty=penalty,
    )


def choose_underqualified(
    state: GameState, trainee: bool, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    gate = state.pending_underqualified_choice
    state.pending_underqualified_choice = None
    character = state.members.get(gate.character_id) if gate else None
    track = ctx.config.catalog.career_ladder.get(gate.career_track_key) if gate else None
    if character is None or track is None or not track.levels:
        return TickLogEntry.at(today, "underqualified_choice_missing")

    title_key = "event_underqualified_decision_title"
    if trainee:
        character.status = CharacterStatus.TRAINEE
        character.trainee_for_career = gate.career_track_key
        character.career_track = None
        character.career_level = 0
        character.progression_penalty = 0.0
        character.stats.skill = 0.0
        character.months_in_current_job_level = 0
        state.add_log(
            "log_became_trainee",
            {"name": character.name, "careerName": track.name_key},
            character_id=character.id,
            event_title_key=title_key,
        )
        return TickLogEntry.at(
            today, "career_trainee", character_id=character.id,
            track=gate.career_track_key,
        )

    penalty = stat_deficit_penalty(character, track)
    _start_job(character, gate.career_track_key, penalty)
    state.add_log(
        "log_accepted_penalized_job",
        {"name": character.name, "title": track.levels[0].title_key},
        character_id=character.id,
        event_title_key=title_key,
    )
    return TickLogEntry.at(
        today, "career_started", character_id=character.id,
        track=gate.career_track_key, penalty=penalty,
    )


def promotion_threshold(
    character: Character, track: CareerTrack, next_level: int
) -> float:
    """下一级所需技能：无高等教育、专业错配各 ×1.5，再乘以 ``1 + 惩罚``。"""
    required = track.levels[next_level].skill_required
    if not has_higher_education(character):
        required *= 1.5
    if is_mismatched(character, track):
        required *= 1.5
    if character.progression_penalty:
        required *= 1 + character.progression_penalty
    return required


def offer_promotion(
    state: GameState, character: Character, track: CareerTrack
) -> Optional[PendingPromotion]:
    next_level = character.career_level + 1
    if next_level >= len(track.levels) or state.pending_promotion is not None:
        return None
    if character.stats.skill < promotion_threshold(character, track, next_level):
        return None
    state.pending_promotion = PendingPromotion(
        character_id=character.id,
        new_level=next_level,
        new_title_key=track.levels[next_level].title_key,
        career_track=character.career_track,
    )
    return state.pending_promotion


def accept_promotion(state: GameState, ctx: SimulationContext) -> TickLogEntry:
    today = state.current_date
    gate = state.pending_promotion
    state.pending_promotion = None
    character = state.members.get(gate.character_id) if gate else None
    if character is None or not character.is_alive:
        return TickLogEntry.at(today, "promotion_missing_character")
    # 录用后若已失业、退休或换了职业，作废该次晋升
    if (
        character.status != CharacterStatus.WORKING
        or character.career_track is None
        or (gate.career_track is not None and gate.career_track != character.career_track)
        or gate.new_level != character.career_level + 1
    ):
        logger.debug("Discarding stale promotion for %s", character.id)
        return TickLogEntry.at(today, "promotion_stale", character_id=character.id)

    character.career_level = gate.new_level
    character.stats.add("happiness", 20)
    character.stats.add("eq", 5)
    character.months_in_current_job_level = 0
    state.add_log(
        "log_promoted",
        {"name": character.name, "title": gate.new_title_key},
        stat_changes={"happiness": 20, "eq": 5},
        character_id=character.id,
        event_title_key="event_promotion_title",
    )
    return TickLogEntry.at(
        today, "promotion_accepted", character_id=character.id, level=gate.new_level
    )


def decline_promotion(state: GameState, ctx: SimulationContext) -> TickLogEntry:
    gate = state.pending_promotion
    state.pending_promotion = None
    return TickLogEntry.at(
        state.current_date,
        "promotion_declined",
        character_id=gate.character_id if gate else None,
    )
