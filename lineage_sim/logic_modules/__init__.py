"""逐方面的 reducer：经济结算、人生阶段、职业、事件调度与事件结算。

每个 reducer 原地修改传入的快照并返回一条 ``TickLogEntry``。
"""

from .career import choose_career, choose_underqualified
from .daily_update import process_daily_updates
from .economy import process_monthly_settlement, settle_due_loans, take_loan
from .event_resolution import choose_event_option, close_event
from .life_stage import process_yearly_checks
from .scheduler import process_scheduler, scan_milestones

__all__ = [
    "choose_career",
    "choose_event_option",
    "choose_underqualified",
    "close_event",
    "process_daily_updates",
    "process_monthly_settlement",
    "process_scheduler",
    "process_yearly_checks",
    "scan_milestones",
    "settle_due_loans",
    "take_loan",
]
