"""声明式事件条件的求值。"""

from __future__ import annotations

from typing import Optional

from ..data_access.models import Character, EventCondition, GameState
from ..utils.random_source import RandomSource


def evaluate_condition(
    condition: Optional[EventCondition],
    state: GameState,
    character: Character,
    rng: RandomSource,
) -> bool:
    if condition is None:
        return True

    if condition.min_age is not None and character.age < condition.min_age:
        return False
    if condition.max_age is not None and character.age > condition.max_age:
        return False
    if condition.gender is not None and character.gender != condition.gender:
        return False
    if (
        condition.relationship_status is not None
        and character.relationship_status != condition.relationship_status
    ):
        return False
    if condition.statuses and character.status not in condition.statuses:
        return False
    if condition.has_pet is not None and bool(character.pet_id) != condition.has_pet:
        return False
    if (
        condition.has_partner is not None
        and bool(character.partner_id) != condition.has_partner
    ):
        return False
    if (
        condition.has_career is not None
        and bool(character.career_track) != condition.has_career
    ):
        return False
    if condition.has_grandchildren is not None:
        has_grandchildren = any(
            state.members[child_id].children_ids
            for child_id in character.children_ids
            if child_id in state.members
        )
        if has_grandchildren != condition.has_grandchildren:
            return False
    if (
        condition.max_children is not None
        and len(character.children_ids) >= condition.max_children
    ):
        return False
    if condition.respect_children_cooldown:
        cooldown = character.children_event_cooldown_until
        if cooldown is not None and state.current_date.is_before(cooldown):
            return False
    for stat, minimum in condition.min_stats.items():
        if character.stats.get(stat) < minimum:
            return False
    if condition.min_fund is not None and state.family_fund < condition.min_fund:
        return False

    # 概率条件放在最后
    if condition.old_age_start is not None:
        if character.age <= condition.old_age_start:
            return False
        hazard = (character.age - condition.old_age_start) * condition.old_age_rate
        if not rng.random() < hazard:
            return False
    if condition.chance is not None and not rng.random() < condition.chance:
        return False
    return True
