"""按固定间隔自动推进游戏的后台任务管理器。"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .orchestrator import GameNotFoundError, GameOrchestrator, GameOverError

logger = logging.getLogger(__name__)


@dataclass
class TickerStatus:
    game_id: str
    interval_seconds: float
    running: bool

    def as_dict(self) -> Dict[str, object]:
        return {
            "game_id": self.game_id,
            "interval_seconds": self.interval_seconds,
            "running": self.running,
        }


class TickerManager:
    """每局游戏至多一个 ticker。

    启动新 ticker 前先取消并等待旧任务结束；循环体内先 ``await`` 推进再休眠，
    因此同一局游戏的两次推进不会重叠。有待决策门时推进为空操作，循环继续轮询。
    """

    def __init__(
        self, orchestrator: GameOrchestrator, interval_seconds: Optional[float] = None
    ) -> None:
        self._orchestrator = orchestrator
        self._default_interval = (
            interval_seconds
            if interval_seconds is not None
            else orchestrator.config.simulation.tick_interval_seconds
        )
        self._tasks: Dict[str, asyncio.Task] = {}
        self._intervals: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def start(self, game_id: str, interval_seconds: Optional[float] = None) -> TickerStatus:
        interval = interval_seconds or self._default_interval
        if interval <= 0:
            raise ValueError("interval_seconds must be positive")
        # fail fast on unknown games
        await self._orchestrator.get_state(game_id)
        async with self._lock:
            await self._cancel(game_id)
            self._intervals[game_id] = interval
            self._tasks[game_id] = asyncio.create_task(self._run(game_id, interval))
        logger.info("Ticker started for game %s every %.3fs", game_id, interval)
        return self.status(game_id)

    async def stop(self, game_id: str) -> TickerStatus:
        async with self._lock:
            interval = self._intervals.get(game_id, self._default_interval)
            stopped = await self._cancel(game_id)
        if stopped:
            logger.info("Ticker stopped for game %s", game_id)
        return TickerStatus(game_id=game_id, interval_seconds=interval, running=False)

    def is_running(self, game_id: str) -> bool:
        task = self._tasks.get(game_id)
        return task is not None and not task.done()

    def status(self, game_id: str) -> TickerStatus:
        return TickerStatus(
            game_id=game_id,
            interval_seconds=self._intervals.get(game_id, self._default_interval),
            running=self.is_running(game_id),
        )

    async def shutdown(self) -> None:
        async with self._lock:
            for game_id in list(self._tasks):
                await self._cancel(game_id)

    async def _cancel(self, game_id: str) -> bool:
        task = self._tasks.pop(game_id, None)
        self._intervals.pop(game_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def _run(self, game_id: str, interval: float) -> None:
        while True:
            try:
                result = await self._orchestrator.advance(game_id, 1)
                if result.state.game_over_reason is not None:
                    logger.info(
                        "Ticker for game %s finished: %s",
                        game_id,
                        result.state.game_over_reason.value,
                    )
                    return
            except (GameNotFoundError, GameOverError) as exc:
                logger.info("Ticker for game %s stopping: %s", game_id, exc)
                return
            except Exception:
                logger.exception("Ticker for game %s failed to advance", game_id)
            await asyncio.sleep(interval)


__all__ = ["TickerManager", "TickerStatus"]
