"""角色与开局状态的构造函数，以及三种开局剧本。"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..data_access.models import (
    Character,
    CharacterStatus,
    GameState,
    Gender,
    LifePhase,
    Pet,
    PetType,
    PendingOptionsChoice,
    RelationshipStatus,
    SimDate,
    Stats,
    clamp_stat,
)
from ..utils.settings import GameConfig
from .interfaces import SimulationContext

logger = logging.getLogger(__name__)

_PHASE_ORDER = (
    LifePhase.NEWBORN,
    LifePhase.ELEMENTARY,
    LifePhase.MIDDLE_SCHOOL,
    LifePhase.HIGH_SCHOOL,
    LifePhase.UNIVERSITY,
    LifePhase.POST_GRADUATION,
)


def get_life_phase(age: int, config: GameConfig) -> LifePhase:
    limits = config.life_stage.phase_max_ages
    for phase in _PHASE_ORDER:
        if age <= limits.get(phase.value, -1):
            return phase
    return LifePhase.RETIRED


def university_education(major: str) -> str:
    return f"University ({major})"


def generate_name(gender: Gender, ctx: SimulationContext) -> str:
    catalog = ctx.config.catalog
    names = catalog.male_names if gender == Gender.MALE else catalog.female_names
    return ctx.rng.choice(names)


def _random_gender(ctx: SimulationContext) -> Gender:
    return Gender.MALE if ctx.rng.random() < 0.5 else Gender.FEMALE


def _random_stats(ctx: SimulationContext, skill: float = 0.0) -> Stats:
    rng = ctx.rng
    return Stats(
        iq=rng.randint(0, 100),
        happiness=rng.randint(0, 100),
        eq=rng.randint(0, 100),
        health=30 + rng.randint(0, 70),
        skill=skill,
    )


def assign_npc_career(character: Character, ctx: SimulationContext) -> None:
    """为非玩家角色（例如配偶）随机生成教育与职业背景。"""
    rng = ctx.rng
    catalog = ctx.config.catalog
    if character.age < 23:
        character.education = "education_high_school"
        character.status = CharacterStatus.UNEMPLOYED
        return
    if character.age >= ctx.config.life_stage.retirement_age:
        character.status = CharacterStatus.RETIRED
        character.career_track = None
        return

    major: Optional[str] = None
    education = "education_high_school"
    if rng.random() < 0.5 and catalog.majors:
        major = rng.choice(catalog.majors).name_key
        education = university_education(major)

    possible = [
        key
        for key, track in catalog.career_ladder.items()
        if not track.required_major or track.required_major == major
    ]
    if not possible:
        character.status = CharacterStatus.UNEMPLOYED
        return
    track_key = rng.choice(possible)
    track = catalog.career_ladder[track_key]

    years_in_workforce = character.age - 23
    level = sum(1 for threshold in (5, 12, 20) if years_in_workforce > threshold)
    level = min(level, max(len(track.levels) - 1, 0))

    character.education = education
    character.major = major
    character.career_track = track_key
    character.career_level = level
    character.status = CharacterStatus.WORKING
    character.stats.skill = rng.random() * 50


def create_initial_character(year: int, ctx: SimulationContext) -> Character:
    gender = _random_gender(ctx)
    return Character(
        id=ctx.new_id(),
        name=generate_name(gender, ctx),
        gender=gender,
        generation=0,
        birth_date=SimDate(day=1, year=year),
        age=0,
        stats=_random_stats(ctx),
        phase=LifePhase.NEWBORN,
        is_player_character=True,
    )


def create_partner(character: Character, ctx: SimulationContext) -> Character:
    """结婚时生成配偶：异性、同代、同龄，属性围绕对方上下浮动。"""
    rng = ctx.rng
    gender = Gender.FEMALE if character.gender == Gender.MALE else Gender.MALE
    base = character.stats
    partner = Character(
        id=ctx.new_id(),
        name=generate_name(gender, ctx),
        gender=gender,
        generation=character.generation,
        birth_date=character.birth_date.model_copy(),
        age=character.age,
        stats=Stats(
            iq=max(20.0, min(200.0, base.iq + rng.randint(-20, 20))),
            happiness=clamp_stat("happiness", base.happiness + rng.randint(-15, 15)),
            eq=clamp_stat("eq", base.eq + rng.randint(-15, 15)),
            health=clamp_stat("health", base.health + rng.randint(-10, 10)),
            skill=0.0,
        ),
        phase=character.phase,
        relationship_status=RelationshipStatus.MARRIED,
        partner_id=character.id,
    )
    assign_npc_career(partner, ctx)
    return partner


def create_child(
    parent1: Character, parent2: Character, today: SimDate, ctx: SimulationContext
) -> Character:
    rng = ctx.rng

    def inherit(stat: str, bonus: float = 0.0) -> float:
        average = (parent1.stats.get(stat) + parent2.stats.get(stat)) / 2
        return clamp_stat(stat, int(average * (0.8 + rng.random() * 0.4) + bonus))

    gender = _random_gender(ctx)
    stats = Stats(
        iq=inherit("iq"),
        happiness=inherit("happiness"),
        eq=inherit("eq"),
        health=inherit("health", bonus=10),
        skill=0.0,
    )
    return Character(
        id=ctx.new_id(),
        name=generate_name(gender, ctx),
        gender=gender,
        generation=parent1.generation + 1,
        birth_date=SimDate(
            day=rng.randint(1, ctx.config.simulation.days_per_year), year=today.year
        ),
        age=0,
        stats=stats,
        phase=LifePhase.NEWBORN,
        parents_ids=[parent1.id, parent2.id],
        is_player_character=parent1.is_player_character
        or parent2.is_player_character,
    )


# ---------------------------------------------------------------------------
# 开局剧本
# ---------------------------------------------------------------------------


def _base_state(
    game_id: str, scenario: str, lang: str, family_name: str, ctx: SimulationContext
) -> GameState:
    sim = ctx.config.simulation
    start = SimDate(day=1, year=sim.initial_year)
    return GameState(
        game_id=game_id,
        family_name=family_name,
        scenario=scenario,
        lang=lang,
        content_version=sim.content_version,
        family_fund=sim.initial_funds,
        current_date=start,
        event_cooldown_until=start.add_days(
            ctx.config.life_stage.initial_event_cooldown_days, sim.days_per_year
        ),
    )


def create_classic_state(state: GameState, ctx: SimulationContext) -> None:
    founder = create_initial_character(state.current_date.year, ctx)
    state.members[founder.id] = founder
    state.total_members = 1
    state.add_log(
        "log_first_generation",
        {"name": founder.name, "familyName": state.family_name},
        character_id=founder.id,
    )


def create_alone_state(state: GameState, ctx: SimulationContext) -> None:
    rng = ctx.rng
    gender = _random_gender(ctx)
    major = rng.choice(ctx.config.catalog.majors).name_key
    age = 24
    character = Character(
        id=ctx.new_id(),
        name=generate_name(gender, ctx),
        gender=gender,
        generation=1,
        birth_date=SimDate(day=1, year=state.current_date.year - age),
        age=age,
        stats=_random_stats(ctx, skill=10 + rng.randint(0, 20)),
        phase=LifePhase.POST_GRADUATION,
        education=university_education(major),
        major=major,
        status=CharacterStatus.UNEMPLOYED,
        is_player_character=True,
    )
    state.members[character.id] = character
    state.total_members = 1
    state.family_fund = 50000.0
    state.pending_career_choice = PendingOptionsChoice(
        character_id=character.id, options=["job", "internship", "vocational"]
    )
    state.add_log("log_alone_start", {"name": character.name}, character_id=character.id)


def create_mila_state(state: GameState, ctx: SimulationContext) -> None:
    """预设的五口之家：一对在职夫妻、三个孩子与一只狗。"""
    year = state.current_date.year
    ids = {name: ctx.new_id() for name in ("mila", "max", "alice", "lucas", "daisy")}
    children = [ids["alice"], ids["lucas"], ids["daisy"]]
    parents = [ids["mila"], ids["max"]]

    def adult(key: str, name: str, gender: Gender, stats: Stats, major: str, track: str, partner: str) -> Character:
        return Character(
            id=ids[key], name=name, gender=gender, generation=1,
            birth_date=SimDate(day=1, year=year - 23), age=23, stats=stats,
            phase=LifePhase.POST_GRADUATION, education=university_education(major),
            major=major, career_track=track, career_level=2,
            status=CharacterStatus.WORKING,
            relationship_status=RelationshipStatus.MARRIED, partner_id=ids[partner],
            children_ids=list(children), is_player_character=(key == "mila"),
        )

    def child(key: str, name: str, gender: Gender, age: int, stats: Stats) -> Character:
        in_school = age >= 6
        return Character(
            id=ids[key], name=name, gender=gender, generation=2,
            birth_date=SimDate(day=1, year=year - age), age=age, stats=stats,
            phase=get_life_phase(age, ctx.config),
            education="school_public" if in_school else "None",
            status=CharacterStatus.IN_EDUCATION if in_school else CharacterStatus.IDLE,
            parents_ids=list(parents), is_player_character=True,
        )

    members = [
        adult("mila", "Mila", Gender.FEMALE, Stats(iq=95, happiness=85, eq=90, health=80, skill=70), "major_business", "Business", "max"),
        adult("max", "Max", Gender.MALE, Stats(iq=85, happiness=95, eq=85, health=95, skill=80), "major_technology", "Technology", "mila"),
        child("alice", "Alice", Gender.FEMALE, 7, Stats(iq=120, happiness=80, eq=75, health=70, skill=65)),
        child("lucas", "Lucas", Gender.MALE, 7, Stats(iq=130, happiness=75, eq=80, health=85, skill=95)),
        child("daisy", "Daisy", Gender.FEMALE, 1, Stats(iq=100, happiness=85, eq=90, health=80, skill=85)),
    ]
    pet = Pet(id=ctx.new_id(), name="Mio", type=PetType.DOG, owner_id=ids["mila"], age=2)
    members[0].pet_id = pet.id

    for member in members:
        state.members[member.id] = member
    state.pets[pet.id] = pet
    state.total_members = len(members)
    state.family_fund = 75000.0
    state.add_log("log_mila_start")


SCENARIOS: Dict[str, Callable[[GameState, SimulationContext], None]] = {
    "classic": create_classic_state,
    "alone": create_alone_state,
    "mila": create_mila_state,
}


def create_initial_state(
    ctx: SimulationContext,
    *,
    game_id: str,
    scenario: str = "classic",
    lang: Optional[str] = None,
    family_name: str = "",
) -> GameState:
    builder = SCENARIOS.get(scenario)
    if builder is None:
        raise ValueError(f"Unknown scenario: {scenario}")
    state = _base_state(
        game_id, scenario, lang or ctx.config.simulation.default_lang, family_name, ctx
    )
    builder(state, ctx)
    logger.info(
        "Created game %s from scenario %s with %d member(s)",
        game_id,
        scenario,
        len(state.members),
    )
    return state
