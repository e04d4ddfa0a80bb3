"""月度经济结算与贷款处理。

结算顺序固定：

1. 清理企业岗位：不在世或不在 18–59 岁的角色被撤下；
2. 计算企业员工工资（``base + skill × multiplier``）；
3. 计算每家企业的月度净收益；
4. 统计宠物开销；
5. 逐个在世角色结算个人收支（企业工资 → 职业薪水 → 学徒津贴 → 养老金
   → 实习津贴 → 职业培训 → 失业）；
6. 更新家族资金，资金为负时打开贷款决策门。

企业净收益::

    gross = base_revenue × (filled / total) × (1 + avg_skill / 200)
    net = gross × (1 − cogs) − robots × robot_cost − fixed − salaries
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from ..core.interfaces import SimulationContext
from ..data_access.models import (
    ROBOT_ID,
    Business,
    Character,
    CharacterStatus,
    GameOverReason,
    GameState,
    LifePhase,
    Loan,
    SimDate,
    TickLogEntry,
)
from ..utils.settings import BusinessDefinition, EconomyConfig, GameConfig
from .career import is_mismatched, offer_promotion, open_career_gate
from .family_business import (
    assigned_slot,
    business_definition,
    slot_requires_other_major,
)

logger = logging.getLogger(__name__)


def cost_of_living(phase: LifePhase, ctx: SimulationContext) -> float:
    """阶段年度生活成本基数加上 ±fluctuation 的均匀扰动。"""
    economy = ctx.config.economy
    base = economy.cost_of_living.get(phase.value, 0.0)
    spread = economy.cost_of_living_fluctuation
    return base + ctx.rng.uniform(-spread, spread)


def business_worker_salary(character: Character, economy: EconomyConfig) -> float:
    return (
        economy.business_worker_base_salary
        + character.stats.skill * economy.business_worker_skill_multiplier
    )


def business_salaries(state: GameState, economy: EconomyConfig) -> Dict[str, float]:
    salaries: Dict[str, float] = {}
    for business in state.businesses.values():
        for slot in business.slots:
            worker_id = slot.assigned_character_id
            if not worker_id or worker_id == ROBOT_ID:
                continue
            worker = state.members.get(worker_id)
            if worker is not None:
                salaries[worker_id] = salaries.get(worker_id, 0.0) + business_worker_salary(
                    worker, economy
                )
    return salaries


def business_net(
    business: Business,
    definition: BusinessDefinition,
    state: GameState,
    salaries: Mapping[str, float],
    economy: EconomyConfig,
) -> float:
    filled = [slot for slot in business.slots if slot.is_filled]
    if not filled:
        return -definition.fixed_monthly_cost

    skills = []
    robots = 0
    for slot in filled:
        if slot.assigned_character_id == ROBOT_ID:
            robots += 1
            skills.append(economy.robot_skill)
        else:
            worker = state.members.get(slot.assigned_character_id)
            if worker is not None:
                skills.append(worker.stats.skill)
    revenue_buff = 1 + (sum(skills) / len(skills)) / 200 if skills else 1.0
    capacity = len(filled) / len(business.slots)
    gross = business.base_revenue * capacity * revenue_buff
    salary_expense = sum(
        salaries.get(slot.assigned_character_id, 0.0)
        for slot in filled
        if slot.assigned_character_id != ROBOT_ID
    )
    return (
        gross
        - gross * definition.cost_of_goods_sold
        - robots * economy.robot_monthly_cost
        - definition.fixed_monthly_cost
        - salary_expense
    )


def skill_gain(character: Character) -> float:
    return min(1.0, (character.stats.iq / 200) * (character.stats.eq / 100))


def _cleanup_business_slots(state: GameState, config: GameConfig) -> int:
    min_age = config.economy.min_working_age
    max_age = config.life_stage.retirement_age
    removed = 0
    for business in state.businesses.values():
        for slot in business.slots:
            worker_id = slot.assigned_character_id
            if not worker_id or worker_id == ROBOT_ID:
                continue
            worker = state.members.get(worker_id)
            if worker is None or not worker.is_alive or not min_age <= worker.age < max_age:
                slot.assigned_character_id = None
                removed += 1
    return removed


def _pet_expenses(state: GameState, config: GameConfig) -> Dict[str, float]:
    expenses: Dict[str, float] = {}
    for pet in state.pets.values():
        definition = config.catalog.pets.get(pet.type.value)
        owner = state.members.get(pet.owner_id)
        if definition is None or owner is None or not owner.is_alive:
            continue
        expenses[owner.id] = expenses.get(owner.id, 0.0) + definition.monthly_cost
    return expenses


def _settle_career(
    state: GameState, character: Character, ctx: SimulationContext
) -> float:
    track = ctx.config.catalog.career_ladder.get(character.career_track or "")
    if track is None or character.career_level >= len(track.levels):
        return 0.0
    gain = skill_gain(character)
    if is_mismatched(character, track):
        gain *= 0.5
    if character.progression_penalty:
        gain *= 1 - character.progression_penalty
    character.stats.add("skill", gain)
    offer_promotion(state, character, track)
    return track.levels[character.career_level].salary / 12


def _settle_trainee(
    state: GameState, character: Character, ctx: SimulationContext
) -> None:
    track = ctx.config.catalog.career_ladder.get(character.trainee_for_career or "")
    if track is None:
        return
    step = ctx.config.economy.trainee_monthly_stat_gain
    stats = character.stats
    if stats.iq < track.iq_required:
        stats.iq = min(track.iq_required, stats.iq + step)
    if stats.eq < track.eq_required:
        stats.eq = min(track.eq_required, stats.eq + step)
    if stats.iq >= track.iq_required and stats.eq >= track.eq_required:
        character.status = CharacterStatus.WORKING
        character.career_track = character.trainee_for_career
        character.career_level = 0
        character.trainee_for_career = None
        character.progression_penalty = 0.0
        stats.skill = 0.0
        state.add_log(
            "log_promoted_from_trainee",
            {"name": character.name, "title": track.levels[0].title_key if track.levels else ""},
            character_id=character.id,
            event_title_key="event_promotion_title",
        )


def _settle_unemployed(
    state: GameState, character: Character, ctx: SimulationContext
) -> None:
    economy = ctx.config.economy
    character.months_unemployed += 1
    character.stats.add("happiness", -1)
    character.stats.add("eq", -1)
    if character.months_unemployed <= economy.unemployed_seek_job_after_months:
        return
    if ctx.rng.chance(economy.unemployed_seek_job_chance) and state.pending_career_choice is None:
        open_career_gate(state, character, ctx)
        state.add_log(
            "log_unemployed_seeking_job", {"name": character.name}, character_id=character.id
        )


def _settle_character(
    state: GameState,
    character: Character,
    salaries: Mapping[str, float],
    ctx: SimulationContext,
) -> float:
    """结算单个角色的月收入（不含生活开销），并就地更新其属性与状态。"""
    economy = ctx.config.economy
    status = character.status
    income = 0.0

    if character.id in salaries:
        income = salaries[character.id]
        gain = skill_gain(character)
        found = assigned_slot(state, character.id)
        if found is not None and slot_requires_other_major(found[1], character.major):
            gain *= 0.5
        character.stats.add("skill", gain)
        character.status = CharacterStatus.WORKING
    elif status == CharacterStatus.WORKING and character.career_track:
        income = _settle_career(state, character, ctx)
    elif status == CharacterStatus.TRAINEE and character.trainee_for_career:
        income = economy.trainee_salary_annual / 12
        _settle_trainee(state, character, ctx)
    elif status == CharacterStatus.RETIRED:
        income = economy.pension_annual / 12
    elif status == CharacterStatus.INTERNSHIP:
        income = economy.internship_stipend_annual / 12
    elif status == CharacterStatus.VOCATIONAL_TRAINING:
        months = economy.vocational_duration_years * 12
        character.stats.add("skill", economy.vocational_skill_gain / months)
        character.stats.add("eq", economy.vocational_eq_gain / months)
    elif status == CharacterStatus.UNEMPLOYED:
        _settle_unemployed(state, character, ctx)
    return income


def _check_promotion_stall(
    state: GameState, character: Character, ctx: SimulationContext
) -> None:
    character.months_in_current_job_level += 1
    if character.months_in_current_job_level != ctx.config.economy.promotion_stall_months:
        return
    track = ctx.config.catalog.career_ladder.get(character.career_track or "")
    if track is None or character.career_level >= len(track.levels) - 1:
        return
    if assigned_slot(state, character.id) is not None:
        return
    penalty = ctx.config.economy.promotion_stall_happiness_penalty
    character.stats.add("happiness", -penalty)
    state.add_log(
        "log_happiness_no_promotion",
        {"name": character.name, "jobTitle": track.levels[character.career_level].title_key},
        character_id=character.id,
    )


def process_monthly_settlement(
    state: GameState, ctx: SimulationContext
) -> TickLogEntry:
    """执行一次月度结算，就地修改 ``state`` 并返回审计日志。"""
    config = ctx.config
    economy = config.economy
    removed = _cleanup_business_slots(state, config)
    salaries = business_salaries(state, economy)

    total_business = 0.0
    for business in state.businesses.values():
        definition = business_definition(business, config)
        if definition is None:
            logger.debug("Skipping business %s with unknown type %s", business.id, business.type)
            continue
        total_business += business_net(business, definition, state, salaries, economy)

    pet_costs = _pet_expenses(state, config)
    total_income = 0.0
    total_expenses = 0.0
    for character in state.living_members():
        expenses = cost_of_living(character.phase, ctx) / 12 + pet_costs.get(character.id, 0.0)
        was_on_track = character.status == CharacterStatus.WORKING and bool(
            character.career_track
        )
        income = _settle_character(state, character, salaries, ctx)
        if was_on_track and character.career_track:
            _check_promotion_stall(state, character, ctx)
        character.monthly_net_income = income - expenses
        total_income += income
        total_expenses += expenses

    net_change = total_income + total_business - total_expenses
    state.family_fund += net_change
    state.monthly_net_change = net_change
    if state.family_fund < 0 and not state.pending_loan_choice:
        state.pending_loan_choice = True
        logger.debug("Game %s fund negative; loan gate opened", state.game_id)

    return TickLogEntry.at(
        state.current_date,
        "monthly_settlement",
        income=round(total_income, 2),
        expenses=round(total_expenses, 2),
        business_net=round(total_business, 2),
        net_change=round(net_change, 2),
        fund=round(state.family_fund, 2),
        slots_cleared=removed,
    )


def take_loan(
    state: GameState, amount: float, term_years: int, ctx: SimulationContext
) -> TickLogEntry:
    today = state.current_date
    loan = Loan(
        id=ctx.new_id(),
        amount=float(amount),
        due_date=SimDate(day=today.day, year=today.year + int(term_years)),
    )
    state.family_fund += loan.amount
    state.active_loans.append(loan)
    state.pending_loan_choice = False
    actor = next(iter(state.living_members()), None)
    state.add_log(
        "log_loan_taken",
        {"amount": loan.amount, "term": int(term_years)},
        character_id=actor.id if actor else None,
        event_title_key="event_loan_decision_title",
        fund_change=loan.amount,
    )
    return TickLogEntry.at(
        today, "loan_taken", loan_id=loan.id, amount=loan.amount,
        due_year=loan.due_date.year,
    )


def settle_due_loans(state: GameState) -> Optional[TickLogEntry]:
    """年初偿还到期贷款；资金不足时以债务结束游戏。"""
    today = state.current_date
    due = [loan for loan in state.active_loans if today.year >= loan.due_date.year]
    if not due:
        return None
    repaid = 0
    for loan in due:
        state.add_log("log_loan_repayment_due", {"amount": loan.amount})
        if state.family_fund < loan.amount:
            state.game_over_reason = GameOverReason.DEBT
            logger.info("Game %s ended in debt", state.game_id)
            return TickLogEntry.at(
                today, "loan_default", loan_id=loan.id, amount=loan.amount,
                fund=state.family_fund,
            )
        state.family_fund -= loan.amount
        state.active_loans = [item for item in state.active_loans if item.id != loan.id]
        state.add_log("log_loan_repaid", {"amount": loan.amount}, fund_change=-loan.amount)
        repaid += 1
    return TickLogEntry.at(today, "loans_repaid", count=repaid)
