import asyncio

import pytest

from lineage_sim.core.orchestrator import GameNotFoundError
from lineage_sim.core.ticker import TickerManager
from lineage_sim.data_access.models import GameOverReason


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_ticker_advances_until_stopped(orchestrator):
    await orchestrator.create_game(game_id="g1")
    ticker = TickerManager(orchestrator, 0.01)

    started = await ticker.start("g1")
    assert started.running
    assert started.interval_seconds == 0.01

    await _wait_until(lambda: len(orchestrator.get_recent_logs("g1")) > 0)
    stopped = await ticker.stop("g1")

    assert not stopped.running
    assert not ticker.is_running("g1")
    day = (await orchestrator.get_state("g1")).current_date.day
    assert day > 1
    await asyncio.sleep(0.05)
    assert (await orchestrator.get_state("g1")).current_date.day == day


@pytest.mark.asyncio
async def test_ticker_rejects_unknown_game_and_bad_interval(orchestrator):
    ticker = TickerManager(orchestrator, 0.01)

    with pytest.raises(GameNotFoundError):
        await ticker.start("missing")

    await orchestrator.create_game(game_id="g1")
    with pytest.raises(ValueError):
        await ticker.start("g1", -1)
    assert not ticker.is_running("g1")


@pytest.mark.asyncio
# 测试：同一局游戏重复启动时，旧任务被取消，只保留一个 ticker。
async def test_restart_replaces_previous_task(orchestrator):
    await orchestrator.create_game(game_id="g1")
    ticker = TickerManager(orchestrator, 0.01)

    await ticker.start("g1")
    first = ticker._tasks["g1"]
    status = await ticker.start("g1", 0.02)

    assert first.cancelled()
    assert ticker._tasks["g1"] is not first
    assert status.interval_seconds == 0.02
    await ticker.shutdown()


@pytest.mark.asyncio
async def test_ticker_stops_when_game_is_over(orchestrator):
    await orchestrator.create_game(game_id="g1")
    state = await orchestrator.get_state("g1")
    state.game_over_reason = GameOverReason.VICTORY
    await orchestrator.data_access.save_game(state)
    ticker = TickerManager(orchestrator, 0.01)

    await ticker.start("g1")

    await _wait_until(lambda: not ticker.is_running("g1"))
    assert ticker.status("g1").running is False


@pytest.mark.asyncio
async def test_shutdown_cancels_every_ticker(orchestrator):
    await orchestrator.create_game(game_id="g1")
    await orchestrator.create_game(game_id="g2")
    ticker = TickerManager(orchestrator, 0.05)
    await ticker.start("g1")
    await ticker.start("g2")

    await ticker.shutdown()

    assert not ticker.is_running("g1")
    assert not ticker.is_running("g2")
    assert ticker._tasks == {}
