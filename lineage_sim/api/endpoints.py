"""基于 FastAPI 暴露游戏生命周期、推进与决策接口。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..core.orchestrator import (
    ChoiceGate,
    GameNotFoundError,
    GameOrchestrator,
    GameOverError,
    NoPendingChoiceError,
    pending_gates,
)
from ..core.ticker import TickerManager
from ..data_access.models import GameState, TickLogEntry
from ..utils.localization import display_name

router = APIRouter(prefix="/games", tags=["games"])

# 由应用 lifespan 注入；未注入时按需创建默认实例
_orchestrator: Optional[GameOrchestrator] = None
_ticker: Optional[TickerManager] = None


def get_orchestrator() -> GameOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = GameOrchestrator()
    return _orchestrator


def get_ticker() -> TickerManager:
    global _ticker
    if _ticker is None:
        _ticker = TickerManager(get_orchestrator())
    return _ticker


class GameCreateRequest(BaseModel):
    """创建游戏时可选指定 id、剧本、语言与家族名。"""

    game_id: Optional[str] = None
    scenario: str = "classic"
    lang: Optional[str] = None
    family_name: str = ""


class GameSummary(BaseModel):
    game_id: str
    year: int
    day: int
    family_fund: float
    living_members: int
    game_over_reason: Optional[str] = None
    awaiting: List[ChoiceGate] = Field(default_factory=list)
    display_names: Dict[str, str] = Field(default_factory=dict)


class GameStateResponse(BaseModel):
    summary: GameSummary
    state: GameState


class AdvanceRequest(BaseModel):
    days: int = Field(default=1, ge=1, le=3600)
    stop_on_choice: bool = True


class AdvanceResponse(BaseModel):
    summary: GameSummary
    days_advanced: int
    logs: List[TickLogEntry]


class ChoiceRequest(BaseModel):
    """决策门的输入。``value`` 的含义由决策门决定；贷款额外使用金额与期限。"""

    value: Any = None
    amount: Optional[float] = None
    term_years: Optional[int] = None


class SlotAssignmentRequest(BaseModel):
    """岗位安排；``assignee`` 为成员 id、机器人或 None（清空岗位）。"""

    assignee: Optional[str] = None


class TickerRequest(BaseModel):
    interval_seconds: Optional[float] = Field(default=None, gt=0.0)


class TickerResponse(BaseModel):
    game_id: str
    interval_seconds: float
    running: bool


def _summarize(state: GameState) -> GameSummary:
    return GameSummary(
        game_id=state.game_id,
        year=state.current_date.year,
        day=state.current_date.day,
        family_fund=state.family_fund,
        living_members=len(state.living_members()),
        game_over_reason=(
            state.game_over_reason.value if state.game_over_reason else None
        ),
        awaiting=pending_gates(state),
        display_names={
            member.id: display_name(member, state.lang) for member in state.living_members()
        },
    )


@router.post("", response_model=GameStateResponse, status_code=status.HTTP_201_CREATED)
async def create_game(payload: GameCreateRequest) -> GameStateResponse:
    """新建一局游戏并返回初始快照。"""
    try:
        state = await get_orchestrator().create_game(
            game_id=payload.game_id,
            scenario=payload.scenario,
            lang=payload.lang,
            family_name=payload.family_name,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.get("/{game_id}", response_model=GameStateResponse)
async def get_game(game_id: str) -> GameStateResponse:
    try:
        state = await get_orchestrator().get_state(game_id)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.delete("/{game_id}")
async def delete_game(game_id: str) -> Dict[str, str]:
    await get_ticker().stop(game_id)
    try:
        await get_orchestrator().delete_game(game_id)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"game_id": game_id, "message": "Game deleted."}


@router.get("/{game_id}/logs", response_model=List[TickLogEntry])
async def get_tick_logs(
    game_id: str, limit: Optional[int] = Query(default=100, ge=1)
) -> List[TickLogEntry]:
    """返回最近的推进审计记录（仅保存在进程内）。"""
    try:
        await get_orchestrator().get_state(game_id)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return get_orchestrator().get_recent_logs(game_id, limit)


@router.post("/{game_id}/ticks", response_model=AdvanceResponse)
async def advance_game(
    game_id: str, payload: Optional[AdvanceRequest] = None
) -> AdvanceResponse:
    """推进若干天；遇到待决策门或游戏结束时提前返回。"""
    request = payload or AdvanceRequest()
    try:
        result = await get_orchestrator().advance(
            game_id, request.days, stop_on_choice=request.stop_on_choice
        )
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except GameOverError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return AdvanceResponse(
        summary=_summarize(result.state),
        days_advanced=result.days_advanced,
        logs=result.logs,
    )


@router.post("/{game_id}/choices/{gate}", response_model=GameStateResponse)
async def resolve_choice(
    game_id: str, gate: ChoiceGate, payload: ChoiceRequest
) -> GameStateResponse:
    try:
        state = await get_orchestrator().resolve_choice(
            game_id, gate, payload.model_dump()
        )
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (GameOverError, NoPendingChoiceError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.post("/{game_id}/businesses", response_model=GameStateResponse)
async def buy_business(game_id: str, business_type: str = Query(...)) -> GameStateResponse:
    try:
        state = await get_orchestrator().buy_business(game_id, business_type)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except GameOverError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.post("/{game_id}/businesses/{business_id}/upgrade", response_model=GameStateResponse)
async def upgrade_business(game_id: str, business_id: str) -> GameStateResponse:
    try:
        state = await get_orchestrator().upgrade_business(game_id, business_id)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except GameOverError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.post(
    "/{game_id}/businesses/{business_id}/slots/{slot_index}", response_model=GameStateResponse
)
async def assign_to_business(
    game_id: str, business_id: str, slot_index: int, payload: SlotAssignmentRequest
) -> GameStateResponse:
    """安排成员或机器人到岗位；拒绝的安排只记入推进记录，快照不变。"""
    try:
        state = await get_orchestrator().assign_to_business(
            game_id, business_id, slot_index, payload.assignee
        )
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except GameOverError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.post("/{game_id}/assets/{asset_id}", response_model=GameStateResponse)
async def purchase_asset(game_id: str, asset_id: str) -> GameStateResponse:
    try:
        state = await get_orchestrator().purchase_asset(game_id, asset_id)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except GameOverError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return GameStateResponse(summary=_summarize(state), state=state)


@router.post("/{game_id}/ticker/start", response_model=TickerResponse)
async def start_ticker(
    game_id: str, payload: Optional[TickerRequest] = None
) -> TickerResponse:
    interval = payload.interval_seconds if payload else None
    try:
        ticker_status = await get_ticker().start(game_id, interval)
    except GameNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return TickerResponse(**ticker_status.as_dict())


@router.post("/{game_id}/ticker/stop", response_model=TickerResponse)
async def stop_ticker(game_id: str) -> TickerResponse:
    ticker_status = await get_ticker().stop(game_id)
    return TickerResponse(**ticker_status.as_dict())
