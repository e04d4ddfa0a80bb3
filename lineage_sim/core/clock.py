"""仿真时钟：把上一日的快照推进一天。

``advance_day`` 深拷贝输入快照，之后按固定顺序组合各子模块：

1. 日期推进（360 天/年），以上一日 ``day % 30 == 1`` 判定月初；
2. 月初执行经济结算；
3. 逐日角色更新；
4. 年初执行人生阶段检查、贷款结算与里程碑扫描；
5. 事件调度。

游戏已结束的快照原样返回。给定相同的随机源，推进结果完全确定。
"""

from __future__ import annotations

import logging
from typing import List

from ..data_access.models import SimDate, TickLogEntry, TickResult, GameState
from ..events.registry import EventRegistry
from ..logic_modules.daily_update import process_daily_updates
from ..logic_modules.economy import process_monthly_settlement, settle_due_loans
from ..logic_modules.life_stage import process_yearly_checks
from ..logic_modules.scheduler import process_scheduler, scan_milestones
from .interfaces import SimulationContext

logger = logging.getLogger(__name__)


def next_date(current: SimDate, days_per_year: int) -> SimDate:
    day = current.day + 1
    year = current.year
    if day > days_per_year:
        day = 1
        year += 1
    return SimDate(day=day, year=year)


def advance_day(
    state: GameState, registry: EventRegistry, ctx: SimulationContext
) -> TickResult:
    if state.game_over_reason is not None:
        return TickResult(state=state)

    sim = ctx.config.simulation
    previous = state.current_date
    new_state = state.model_copy(deep=True)
    new_month = previous.day % sim.days_per_month == 1
    queue_was_empty = not state.event_queue

    new_state.current_date = next_date(previous, sim.days_per_year)
    new_year = new_state.current_date.day == 1 and new_state.current_date.year > previous.year

    logs: List[TickLogEntry] = []
    if new_month:
        logs.append(process_monthly_settlement(new_state, ctx))

    logs.append(process_daily_updates(new_state, registry, ctx))

    if new_year:
        logs.append(process_yearly_checks(new_state, registry, ctx))
        loan_log = settle_due_loans(new_state)
        if loan_log is not None:
            logs.append(loan_log)
        if new_state.game_over_reason is None:
            queued = scan_milestones(new_state, registry, ctx)
            logs.append(
                TickLogEntry.at(new_state.current_date, "milestones_scanned", queued=queued)
            )

    if new_state.game_over_reason is None:
        logs.append(process_scheduler(new_state, registry, ctx, queue_was_empty))
    else:
        logger.info(
            "Game %s is over (%s)", new_state.game_id, new_state.game_over_reason.value
        )

    logger.debug(
        "Game %s advanced to day %d of %d",
        new_state.game_id,
        new_state.current_date.day,
        new_state.current_date.year,
    )
    return TickResult(
        state=new_state, logs=logs, new_month=new_month, new_year=new_year
    )
