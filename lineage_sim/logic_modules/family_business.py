"""家族企业与资产处理模块。

负责企业的购买、升级、岗位分配以及资产购买。企业的月度损益在
``economy`` 中结算，这里只处理玩家主动发起的操作。

所有入口在引用的企业、岗位或角色不存在时都是空操作，只返回一条
``TickLogEntry`` 说明原因，不抛出异常。
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from ..core.interfaces import SimulationContext
from ..data_access.models import (
    ROBOT_ID,
    UNSKILLED_MAJOR,
    Business,
    BusinessSlot,
    CharacterStatus,
    GameState,
    PurchasedAsset,
    TickLogEntry,
    clamp_stat,
)
from ..utils.settings import BusinessDefinition, GameConfig

logger = logging.getLogger(__name__)


def business_definition(
    business: Business, config: GameConfig
) -> Optional[BusinessDefinition]:
    return config.catalog.businesses.get(business.type)


def assigned_slot(
    state: GameState, character_id: str
) -> Optional[Tuple[Business, BusinessSlot]]:
    """返回角色当前占用的企业岗位，未分配时返回 None。"""
    for business in state.businesses.values():
        for slot in business.slots:
            if slot.assigned_character_id == character_id:
                return business, slot
    return None


def vacate_business_slots(state: GameState, character_id: str) -> int:
    vacated = 0
    for business in state.businesses.values():
        for slot in business.slots:
            if slot.assigned_character_id == character_id:
                slot.assigned_character_id = None
                vacated += 1
    return vacated


def slot_requires_other_major(slot: BusinessSlot, major: Optional[str]) -> bool:
    return slot.required_major != UNSKILLED_MAJOR and slot.required_major != major


def _first_living_id(state: GameState) -> Optional[str]:
    for member in state.members.values():
        if member.is_alive:
            return member.id
    return None


def buy_business(
    state: GameState, business_type: str, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    definition = ctx.config.catalog.businesses.get(business_type)
    if definition is None:
        return TickLogEntry.at(today, "business_unknown_type", type=business_type)

    actor_id = _first_living_id(state)
    replacements = {"businessName": definition.name_key}
    if state.family_fund < definition.cost:
        state.add_log("log_business_purchase_fail", replacements)
        return TickLogEntry.at(
            today, "business_purchase_unaffordable", type=business_type
        )

    business = Business(
        id=ctx.new_id(),
        name_key=definition.name_key,
        type=business_type,
        level=1,
        owner_id=actor_id or "",
        slots=[
            BusinessSlot(role_key=slot.role_key, required_major=slot.required_major)
            for slot in definition.slots
        ],
        base_revenue=definition.base_revenue,
    )
    state.businesses[business.id] = business
    state.family_fund -= definition.cost
    state.add_log(
        "log_business_purchased",
        replacements,
        character_id=actor_id,
        event_title_key="event_business_purchase_title",
        fund_change=-definition.cost,
    )
    logger.debug("Game %s bought business %s", state.game_id, business_type)
    return TickLogEntry.at(
        today,
        "business_purchased",
        business_id=business.id,
        type=business_type,
        cost=definition.cost,
    )


def upgrade_business(
    state: GameState, business_id: str, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    business = state.businesses.get(business_id)
    definition = business_definition(business, ctx.config) if business else None
    if business is None or definition is None:
        return TickLogEntry.at(today, "business_missing", business_id=business_id)
    economy = ctx.config.economy
    if business.level >= economy.business_max_level:
        return TickLogEntry.at(
            today, "business_at_max_level", business_id=business_id, level=business.level
        )

    cost = definition.cost * economy.business_upgrade_cost_ratio
    replacements = {"businessName": definition.name_key}
    if state.family_fund < cost:
        state.add_log("log_business_upgrade_fail", replacements)
        return TickLogEntry.at(
            today, "business_upgrade_unaffordable", business_id=business_id, cost=cost
        )

    business.level += 1
    business.slots.extend(
        BusinessSlot(role_key=slot.role_key, required_major=slot.required_major)
        for slot in definition.upgrade_slots
    )
    state.family_fund -= cost
    state.add_log(
        "log_business_upgraded",
        replacements,
        character_id=_first_living_id(state),
        event_title_key="event_business_upgrade_title",
        fund_change=-cost,
    )
    return TickLogEntry.at(
        today,
        "business_upgraded",
        business_id=business_id,
        level=business.level,
        cost=cost,
    )


def assign_to_business(
    state: GameState,
    business_id: str,
    slot_index: int,
    assignee: Optional[str],
    ctx: SimulationContext,
) -> TickLogEntry:
    """把角色、机器人（``ROBOT_ID``）或空缺（None）放入指定岗位。

    原岗位上的角色转为失业；新角色会先从其他岗位撤下，之后以企业员工身份
    工作，不再保留职业阶梯。岗位要求其他专业时技能清零。
    """
    today = state.current_date
    business = state.businesses.get(business_id)
    if business is None or not 0 <= slot_index < len(business.slots):
        return TickLogEntry.at(
            today, "business_slot_missing", business_id=business_id, slot=slot_index
        )

    character = None
    if assignee is not None and assignee != ROBOT_ID:
        character = state.members.get(assignee)
        if character is None or not character.is_alive:
            return TickLogEntry.at(
                today, "business_assignee_missing", character_id=assignee
            )
        economy = ctx.config.economy
        retirement_age = ctx.config.life_stage.retirement_age
        if not economy.min_working_age <= character.age < retirement_age:
            return TickLogEntry.at(
                today, "business_assignee_not_working_age", character_id=assignee
            )

    slot = business.slots[slot_index]
    previous = slot.assigned_character_id
    if previous and previous != ROBOT_ID and previous != assignee:
        old = state.members.get(previous)
        if old is not None:
            old.status = CharacterStatus.UNEMPLOYED
            old.monthly_net_income = 0.0

    if character is not None:
        vacate_business_slots(state, character.id)
        definition = business_definition(business, ctx.config)
        business_name = definition.name_key if definition else business.name_key
        if character.status == CharacterStatus.WORKING and character.career_track:
            track = ctx.config.catalog.career_ladder.get(character.career_track)
            old_job = (
                track.levels[character.career_level].title_key
                if track and character.career_level < len(track.levels)
                else character.career_track
            )
            state.add_log(
                "log_quit_job_for_business",
                {"name": character.name, "oldJob": old_job, "businessName": business_name},
                character_id=character.id,
                event_title_key="event_business_assignment_title",
            )
        else:
            state.add_log(
                "log_started_at_business",
                {"name": character.name, "businessName": business_name},
                character_id=character.id,
                event_title_key="event_business_assignment_title",
            )
        character.status = CharacterStatus.WORKING
        character.career_track = None
        character.career_level = 0
        character.months_in_current_job_level = 0
        if slot_requires_other_major(slot, character.major):
            character.stats.skill = 0.0

    slot.assigned_character_id = assignee
    return TickLogEntry.at(
        today,
        "business_slot_assigned",
        business_id=business_id,
        slot=slot_index,
        assignee=assignee or "",
    )


def purchase_asset(
    state: GameState, asset_id: str, ctx: SimulationContext
) -> TickLogEntry:
    """购买资产：一次性按比例提升玩家角色属性，每种资产只能购买一次。"""
    today = state.current_date
    definition = ctx.config.catalog.assets.get(asset_id)
    if definition is None:
        return TickLogEntry.at(today, "asset_unknown", asset_id=asset_id)
    if asset_id in state.purchased_assets:
        return TickLogEntry.at(today, "asset_already_owned", asset_id=asset_id)
    if state.family_fund < definition.cost:
        return TickLogEntry.at(today, "asset_unaffordable", asset_id=asset_id)

    actor = next(
        (member for member in state.members.values() if member.is_player_character),
        None,
    )
    if actor is not None:
        for stat, ratio in definition.effects.items():
            setattr(
                actor.stats, stat, clamp_stat(stat, actor.stats.get(stat) * (1 + ratio))
            )

    state.purchased_assets[asset_id] = PurchasedAsset(
        id=asset_id, purchase_year=today.year
    )
    state.family_fund -= definition.cost
    state.add_log(
        "log_asset_purchased",
        {"name": definition.name_key},
        fund_change=-definition.cost,
        character_id=actor.id if actor else None,
        event_title_key="event_asset_purchase_title",
    )
    return TickLogEntry.at(
        today, "asset_purchased", asset_id=asset_id, cost=definition.cost
    )
