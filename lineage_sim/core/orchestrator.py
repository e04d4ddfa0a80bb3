"""宿主编排器：在异步环境中串行化同一局游戏的推进与决策。

同步 reducer（``clock.advance_day`` 及各决策入口）本身不做并发控制，
编排器为每局游戏维护一把 ``asyncio.Lock``：加载快照、执行 reducer、
保存快照三步在锁内完成，保证推进与决策互不交错。
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..data_access.models import GameState, TickLogEntry
from ..data_access.state_store import DataAccessLayer, GameNotFoundError
from ..events.loader import load_default_registry
from ..events.registry import EventRegistry
from ..logic_modules import career, economy, event_resolution, family_business, life_stage
from ..utils import metrics
from .clock import advance_day
from .entity_factory import create_initial_state
from .interfaces import SimulationContext

logger = logging.getLogger(__name__)

__all__ = [
    "AdvanceResult",
    "ChoiceGate",
    "GameNotFoundError",
    "GameOrchestrator",
    "GameOverError",
    "NoPendingChoiceError",
    "pending_gates",
]


class GameOverError(RuntimeError):
    def __init__(self, game_id: str, reason: str) -> None:
        super().__init__(f"Game {game_id} is over ({reason})")
        self.game_id = game_id
        self.reason = reason


class NoPendingChoiceError(RuntimeError):
    """请求解决的决策门当前并未打开。"""

    def __init__(self, game_id: str, gate: str) -> None:
        super().__init__(f"Game {game_id} has no pending '{gate}' choice")
        self.game_id = game_id
        self.gate = gate


class ChoiceGate(str, Enum):
    SCHOOL = "school"
    CLUB = "club"
    UNIVERSITY = "university"
    MAJOR = "major"
    CAREER = "career"
    UNDERQUALIFIED = "underqualified"
    LOAN = "loan"
    PROMOTION = "promotion"
    EVENT = "event"


def pending_gates(state: GameState) -> List[ChoiceGate]:
    """按界面弹出顺序列出当前等待玩家处理的决策门。"""
    gates: List[ChoiceGate] = []
    if state.active_event is not None:
        gates.append(ChoiceGate.EVENT)
    if state.pending_school_choice:
        gates.append(ChoiceGate.SCHOOL)
    if state.pending_club_choice is not None:
        gates.append(ChoiceGate.CLUB)
    if state.pending_university_choice:
        gates.append(ChoiceGate.UNIVERSITY)
    if state.pending_major_choice is not None:
        gates.append(ChoiceGate.MAJOR)
    if state.pending_career_choice is not None:
        gates.append(ChoiceGate.CAREER)
    if state.pending_underqualified_choice is not None:
        gates.append(ChoiceGate.UNDERQUALIFIED)
    if state.pending_loan_choice:
        gates.append(ChoiceGate.LOAN)
    if state.pending_promotion is not None:
        gates.append(ChoiceGate.PROMOTION)
    return gates


class AdvanceResult(BaseModel):
    state: GameState
    days_advanced: int
    logs: List[TickLogEntry] = Field(default_factory=list)
    awaiting: List[ChoiceGate] = Field(default_factory=list)


Reducer = Callable[[GameState, SimulationContext], TickLogEntry]


class GameOrchestrator:
    """多局游戏的异步宿主，负责锁、持久化与 reducer 的组合。"""

    def __init__(
        self,
        data_access: Optional[DataAccessLayer] = None,
        *,
        registry: Optional[EventRegistry] = None,
        context_factory: Optional[Callable[[str], SimulationContext]] = None,
    ) -> None:
        self.data_access = data_access or DataAccessLayer.with_default_store()
        self.config = self.data_access.config
        self.registry = registry or load_default_registry()
        self._context_factory = context_factory or (
            lambda _game_id: SimulationContext.seeded(config=self.config)
        )
        self._contexts: Dict[str, SimulationContext] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, game_id: str) -> asyncio.Lock:
        lock = self._locks.get(game_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[game_id] = lock
        return lock

    def _context_for(self, game_id: str) -> SimulationContext:
        ctx = self._contexts.get(game_id)
        if ctx is None:
            ctx = self._context_factory(game_id)
            self._contexts[game_id] = ctx
        return ctx

    def _forget(self, game_id: str) -> None:
        self._contexts.pop(game_id, None)
        self._locks.pop(game_id, None)

    async def _load(self, game_id: str) -> GameState:
        try:
            return await self.data_access.load_game(game_id)
        except GameNotFoundError:
            self._forget(game_id)
            raise

    async def create_game(
        self,
        *,
        game_id: Optional[str] = None,
        scenario: str = "classic",
        lang: Optional[str] = None,
        family_name: str = "",
    ) -> GameState:
        resolved_id = game_id or uuid.uuid4().hex
        async with self._lock_for(resolved_id):
            ctx = self._context_for(resolved_id)
            state = create_initial_state(
                ctx,
                game_id=resolved_id,
                scenario=scenario,
                lang=lang,
                family_name=family_name,
            )
            await self.data_access.save_game(state)
        logger.info("Game %s created (%s)", resolved_id, scenario)
        return state

    async def get_state(self, game_id: str) -> GameState:
        return await self._load(game_id)

    async def delete_game(self, game_id: str) -> None:
        async with self._lock_for(game_id):
            await self.data_access.delete_game(game_id)
        self._forget(game_id)
        logger.info("Game %s deleted", game_id)

    def get_recent_logs(self, game_id: str, limit: Optional[int] = None) -> List[TickLogEntry]:
        return self.data_access.get_recent_logs(game_id, limit)

    async def advance(
        self, game_id: str, days: int = 1, *, stop_on_choice: bool = True
    ) -> AdvanceResult:
        """推进至多 ``days`` 天；出现待决策门或游戏结束时提前停止。"""
        if days <= 0:
            raise ValueError("days must be a positive integer")
        async with self._lock_for(game_id):
            state = await self._load(game_id)
            if state.game_over_reason is not None:
                raise GameOverError(game_id, state.game_over_reason.value)
            ctx = self._context_for(game_id)
            logs: List[TickLogEntry] = []
            advanced = 0
            with metrics.ADVANCE_DURATION.time():
                while advanced < days:
                    if stop_on_choice and pending_gates(state):
                        break
                    result = advance_day(state, self.registry, ctx)
                    state = result.state
                    logs.extend(result.logs)
                    advanced += 1
                    if state.game_over_reason is not None:
                        metrics.GAMES_OVER.labels(
                            reason=state.game_over_reason.value
                        ).inc()
                        break
            await self.data_access.save_game(state)
            self.data_access.record_tick_logs(game_id, logs)
        metrics.DAYS_ADVANCED.inc(advanced)
        logger.debug("Game %s advanced %d day(s)", game_id, advanced)
        return AdvanceResult(
            state=state,
            days_advanced=advanced,
            logs=logs,
            awaiting=pending_gates(state),
        )

    async def _resolve(
        self,
        game_id: str,
        gate: Optional[ChoiceGate],
        reducer: Reducer,
    ) -> GameState:
        async with self._lock_for(game_id):
            state = await self._load(game_id)
            if state.game_over_reason is not None:
                raise GameOverError(game_id, state.game_over_reason.value)
            if gate is not None and gate not in pending_gates(state):
                raise NoPendingChoiceError(game_id, gate.value)
            entry = reducer(state, self._context_for(game_id))
            await self.data_access.save_game(state)
            self.data_access.record_tick_logs(game_id, [entry])
            finished = state.game_over_reason
        if gate is not None:
            metrics.CHOICES_RESOLVED.labels(gate=gate.value).inc()
        if finished is not None:
            metrics.GAMES_OVER.labels(reason=finished.value).inc()
        logger.debug("Game %s: %s", game_id, entry.message)
        return state

    async def choose_school(self, game_id: str, option_key: str) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.SCHOOL,
            lambda state, ctx: life_stage.choose_school(state, option_key, ctx),
        )

    async def choose_club(self, game_id: str, club_id: Optional[str]) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.CLUB,
            lambda state, ctx: life_stage.choose_club(state, club_id, ctx),
        )

    async def choose_university(self, game_id: str, go: bool) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.UNIVERSITY,
            lambda state, ctx: life_stage.choose_university(state, go, ctx),
        )

    async def choose_major(self, game_id: str, major_key: str) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.MAJOR,
            lambda state, ctx: life_stage.choose_major(state, major_key, ctx),
        )

    async def abandon_university(self, game_id: str) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.MAJOR,
            lambda state, ctx: life_stage.abandon_university(state, ctx),
        )

    async def choose_career(self, game_id: str, choice_key: str) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.CAREER,
            lambda state, ctx: career.choose_career(state, choice_key, ctx),
        )

    async def choose_underqualified(self, game_id: str, trainee: bool) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.UNDERQUALIFIED,
            lambda state, ctx: career.choose_underqualified(state, trainee, ctx),
        )

    async def take_loan(self, game_id: str, amount: float, term_years: int) -> GameState:
        if amount <= 0 or term_years <= 0:
            raise ValueError("loan amount and term must be positive")
        return await self._resolve(
            game_id,
            ChoiceGate.LOAN,
            lambda state, ctx: economy.take_loan(state, amount, term_years, ctx),
        )

    async def respond_to_promotion(self, game_id: str, accept: bool) -> GameState:
        reducer = career.accept_promotion if accept else career.decline_promotion
        return await self._resolve(game_id, ChoiceGate.PROMOTION, reducer)

    async def choose_event_option(self, game_id: str, choice_id: str) -> GameState:
        """应用选项效果并关闭当前事件，两步在同一次加锁内完成。"""

        def _choose_and_close(state: GameState, ctx: SimulationContext) -> TickLogEntry:
            entry = event_resolution.choose_event_option(
                state, choice_id, self.registry, ctx
            )
            if entry.message == "event_resolved":
                event_resolution.close_event(state)
            return entry

        return await self._resolve(game_id, ChoiceGate.EVENT, _choose_and_close)

    async def close_event(self, game_id: str) -> GameState:
        return await self._resolve(
            game_id,
            ChoiceGate.EVENT,
            lambda state, ctx: event_resolution.close_event(state),
        )

    async def buy_business(self, game_id: str, business_type: str) -> GameState:
        return await self._resolve(
            game_id,
            None,
            lambda state, ctx: family_business.buy_business(state, business_type, ctx),
        )

    async def upgrade_business(self, game_id: str, business_id: str) -> GameState:
        return await self._resolve(
            game_id,
            None,
            lambda state, ctx: family_business.upgrade_business(state, business_id, ctx),
        )

    async def assign_to_business(
        self,
        game_id: str,
        business_id: str,
        slot_index: int,
        assignee: Optional[str],
    ) -> GameState:
        return await self._resolve(
            game_id,
            None,
            lambda state, ctx: family_business.assign_to_business(
                state, business_id, slot_index, assignee, ctx
            ),
        )

    async def purchase_asset(self, game_id: str, asset_id: str) -> GameState:
        return await self._resolve(
            game_id,
            None,
            lambda state, ctx: family_business.purchase_asset(state, asset_id, ctx),
        )

    async def resolve_choice(
        self, game_id: str, gate: ChoiceGate, payload: Dict[str, Any]
    ) -> GameState:
        """按决策门名称分派到具体的入口，供 HTTP 层使用。"""
        value = payload.get("value")
        if gate is ChoiceGate.SCHOOL:
            return await self.choose_school(game_id, str(value))
        if gate is ChoiceGate.CLUB:
            return await self.choose_club(game_id, value)
        if gate is ChoiceGate.UNIVERSITY:
            return await self.choose_university(game_id, bool(value))
        if gate is ChoiceGate.MAJOR:
            if value is None:
                return await self.abandon_university(game_id)
            return await self.choose_major(game_id, str(value))
        if gate is ChoiceGate.CAREER:
            return await self.choose_career(game_id, str(value))
        if gate is ChoiceGate.UNDERQUALIFIED:
            return await self.choose_underqualified(game_id, bool(value))
        if gate is ChoiceGate.LOAN:
            return await self.take_loan(
                game_id,
                float(payload.get("amount") or 0),
                int(payload.get("term_years") or 0),
            )
        if gate is ChoiceGate.PROMOTION:
            return await self.respond_to_promotion(game_id, bool(value))
        if gate is ChoiceGate.EVENT:
            if value is None:
                return await self.close_event(game_id)
            return await self.choose_event_option(game_id, str(value))
        raise ValueError(f"Unsupported gate: {gate}")
