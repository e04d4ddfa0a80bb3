"""
Lineage Simulator 应用的入口模块（FastAPI）。

lifespan 负责创建共享的 DataAccessLayer（按环境变量选择 Redis 或内存存储）、
编排器与 ticker 管理器，并注入到路由模块；关闭时停止所有 ticker。

重要环境变量：
- LINEAGE_SIM_REDIS_URL：设置后使用 Redis 保存快照。
- LINEAGE_SIM_REDIS_PREFIX：Redis 键前缀，默认 ``lineage_sim``。
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .api import endpoints as api_endpoints_module
from .api.endpoints import router as games_router
from .utils import metrics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from .core.orchestrator import GameOrchestrator
    from .core.ticker import TickerManager
    from .data_access.state_store import DataAccessLayer

    if api_endpoints_module._orchestrator is None:
        api_endpoints_module._orchestrator = GameOrchestrator(
            DataAccessLayer.with_default_store()
        )
    if api_endpoints_module._ticker is None:
        api_endpoints_module._ticker = TickerManager(api_endpoints_module._orchestrator)
    logger.info("--- Orchestrator and ticker manager created and injected ---")

    yield

    ticker = api_endpoints_module._ticker
    if ticker is not None:
        await ticker.shutdown()
    logger.info("Ticker manager shut down")


app = FastAPI(title="Lineage Simulator", version="0.1.0", lifespan=lifespan)
app.include_router(games_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict:
    """提供健康检查端点，供运行时监控使用。"""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
async def prometheus_metrics() -> PlainTextResponse:
    return PlainTextResponse(
        content=metrics.render_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
