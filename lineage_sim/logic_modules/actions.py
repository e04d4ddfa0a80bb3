"""事件效果携带的动作（``ActionKind``）的统一分派。

每种动作对应一个处理函数，签名一致::

    handler(state, character, params, registry, ctx) -> TickLogEntry

分派表在模块导入时与 ``ActionKind`` 做完整性检查，新增枚举值而
未注册处理函数会直接导致导入失败。引用的角色、配偶或宠物不存在时，
动作是空操作。
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional

from ..core.entity_factory import create_child, create_partner
from ..core.interfaces import SimulationContext
from ..data_access.models import (
    ActionKind,
    Character,
    CharacterStatus,
    GameState,
    Pet,
    PetType,
    RelationshipStatus,
    TickLogEntry,
)
from ..events.registry import EventRegistry
from .life_stage import kill_character

logger = logging.getLogger(__name__)

ActionHandler = Callable[
    [GameState, Character, Mapping[str, float], EventRegistry, SimulationContext],
    TickLogEntry,
]


def _noop(state: GameState, kind: ActionKind, reason: str, **context) -> TickLogEntry:
    logger.debug("Action %s skipped: %s", kind.value, reason)
    return TickLogEntry.at(
        state.current_date, "action_skipped", action=kind.value, reason=reason, **context
    )


def _living_partner(state: GameState, character: Character) -> Optional[Character]:
    partner = state.members.get(character.partner_id or "")
    if partner is None or not partner.is_alive:
        return None
    return partner


def _marry(state, character, params, registry, ctx) -> TickLogEntry:
    if character.partner_id:
        return _noop(state, ActionKind.MARRY, "already_married", character_id=character.id)
    partner = create_partner(character, ctx)
    state.members[partner.id] = partner
    character.relationship_status = RelationshipStatus.MARRIED
    character.partner_id = partner.id
    state.total_members += 1
    state.add_log(
        "log_married",
        {"name1": character.name, "name2": partner.name},
        character_id=character.id,
        event_title_key="event_marriage_title",
    )
    return TickLogEntry.at(
        state.current_date, "action_marry", character_id=character.id,
        partner_id=partner.id,
    )


def _children_count(state: GameState, ctx: SimulationContext) -> int:
    stage = ctx.config.life_stage
    roll = ctx.rng.random()
    born = state.total_children_born
    if born >= stage.triplets_unlock_children and roll < stage.triplets_chance:
        return 3
    if born >= stage.twins_unlock_children and roll < stage.twins_chance:
        return 2
    return 1


def _spawn_children(state, character, params, registry, ctx) -> TickLogEntry:
    partner = state.members.get(character.partner_id or "")
    if partner is None:
        return _noop(state, ActionKind.SPAWN_CHILDREN, "no_partner", character_id=character.id)

    count = _children_count(state, ctx)
    children = [
        create_child(character, partner, state.current_date, ctx) for _ in range(count)
    ]
    for child in children:
        state.members[child.id] = child
        character.children_ids.append(child.id)
        partner.children_ids.append(child.id)
    state.total_members += count
    state.total_children_born += count

    replacements = {"parent1": character.name, "parent2": partner.name}
    if count == 1:
        message_key = "log_had_child"
        replacements["childName"] = children[0].name
    else:
        message_key = "log_had_twins" if count == 2 else "log_had_triplets"
        for index, child in enumerate(children, start=1):
            replacements[f"childName{index}"] = child.name
    state.add_log(
        message_key, replacements, character_id=character.id,
        event_title_key="event_birth_title",
    )
    return TickLogEntry.at(
        state.current_date, "action_spawn_children", character_id=character.id,
        count=count,
    )


OLD_AGE_GRIEF = 20.0


def _die_of_old_age(state, character, params, registry, ctx) -> TickLogEntry:
    kill_character(state, character, "death_cause_old_age", registry, ctx)
    for member in state.living_members():
        member.stats.happiness = max(0.0, member.stats.happiness - OLD_AGE_GRIEF)
    return TickLogEntry.at(
        state.current_date, "action_die_of_old_age", character_id=character.id
    )


def _adopt_pet(state, character, params, registry, ctx) -> TickLogEntry:
    if character.pet_id:
        state.add_log("log_pet_already_owned", {"name": character.name})
        return _noop(state, ActionKind.ADOPT_PET, "already_owned", character_id=character.id)

    catalog = ctx.config.catalog.pets
    types = [pet_type for pet_type in PetType if pet_type.value in catalog]
    if not types:
        return _noop(state, ActionKind.ADOPT_PET, "no_pet_catalog")
    pet_type = ctx.rng.choice(types)
    definition = catalog[pet_type.value]
    pet_name = ctx.rng.choice(definition.names) if definition.names else pet_type.value
    pet = Pet(id=ctx.new_id(), name=pet_name, type=pet_type, owner_id=character.id)
    state.pets[pet.id] = pet
    character.pet_id = pet.id
    for stat, value in definition.effects.items():
        setattr(character.stats, stat, min(100.0, character.stats.get(stat) + value))
    state.add_log(
        "log_pet_adopted",
        {"name": character.name, "petType": definition.name_key, "petName": pet_name},
        character_id=character.id,
        event_title_key="event_pet_adoption_log_title",
    )
    return TickLogEntry.at(
        state.current_date, "action_adopt_pet", character_id=character.id,
        pet_id=pet.id, pet_type=pet_type.value,
    )


def _remove_pet(state, character, params, registry, ctx) -> TickLogEntry:
    if character.pet_id is None:
        return _noop(state, ActionKind.REMOVE_PET, "no_pet", character_id=character.id)
    pet = state.pets.pop(character.pet_id, None)
    if pet is not None:
        definition = ctx.config.catalog.pets.get(pet.type.value)
        for stat, value in (definition.effects if definition else {}).items():
            setattr(character.stats, stat, max(0.0, character.stats.get(stat) - value))
    character.pet_id = None
    return TickLogEntry.at(
        state.current_date, "action_remove_pet", character_id=character.id
    )


def _lose_job(state, character, params, registry, ctx) -> TickLogEntry:
    character.status = CharacterStatus.UNEMPLOYED
    character.career_track = None
    character.career_level = 0
    character.months_in_current_job_level = 0
    return TickLogEntry.at(state.current_date, "action_lose_job", character_id=character.id)


def _project_bonus(state, character, params, registry, ctx) -> TickLogEntry:
    chance = float(params.get("chance", 0.0))
    amount = float(params.get("amount", 0.0))
    if not ctx.rng.chance(chance):
        return TickLogEntry.at(
            state.current_date, "action_project_bonus_missed", character_id=character.id
        )
    state.family_fund += amount
    state.add_log(
        "log_workinglife_project_bonus",
        {"name": character.name, "amount": amount},
        fund_change=amount,
        character_id=character.id,
    )
    return TickLogEntry.at(
        state.current_date, "action_project_bonus", character_id=character.id,
        amount=amount,
    )


def _apply_params(character: Character, params: Mapping[str, float]) -> None:
    for stat, delta in params.items():
        character.stats.add(stat, float(delta))


def _affect_couple(state, character, params, registry, ctx) -> TickLogEntry:
    _apply_params(character, params)
    partner = _living_partner(state, character)
    if partner is not None:
        _apply_params(partner, params)
    return TickLogEntry.at(
        state.current_date, "action_affect_couple", character_id=character.id,
        partner_id=partner.id if partner else None,
    )


def _affect_partner(state, character, params, registry, ctx) -> TickLogEntry:
    partner = _living_partner(state, character)
    if partner is None:
        return _noop(state, ActionKind.AFFECT_PARTNER, "no_partner", character_id=character.id)
    _apply_params(partner, params)
    return TickLogEntry.at(
        state.current_date, "action_affect_partner", character_id=character.id,
        partner_id=partner.id,
    )


ACTION_HANDLERS: Dict[ActionKind, ActionHandler] = {
    ActionKind.MARRY: _marry,
    ActionKind.SPAWN_CHILDREN: _spawn_children,
    ActionKind.DIE_OF_OLD_AGE: _die_of_old_age,
    ActionKind.ADOPT_PET: _adopt_pet,
    ActionKind.REMOVE_PET: _remove_pet,
    ActionKind.LOSE_JOB: _lose_job,
    ActionKind.PROJECT_BONUS: _project_bonus,
    ActionKind.AFFECT_COUPLE: _affect_couple,
    ActionKind.AFFECT_PARTNER: _affect_partner,
}

_unhandled = set(ActionKind) - set(ACTION_HANDLERS)
if _unhandled:
    raise RuntimeError(
        f"Action kinds without handler: {sorted(kind.value for kind in _unhandled)}"
    )


def dispatch_action(
    kind: ActionKind,
    state: GameState,
    character_id: str,
    params: Mapping[str, float],
    registry: EventRegistry,
    ctx: SimulationContext,
) -> TickLogEntry:
    character = state.members.get(character_id)
    if character is None or not character.is_alive:
        return _noop(state, kind, "missing_character", character_id=character_id)
    return ACTION_HANDLERS[kind](state, character, params, registry, ctx)
