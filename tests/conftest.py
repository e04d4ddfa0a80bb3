"""Pytest configuration helpers for the lineage simulator project.

Conventions and fixtures
- `ctx` : a `SimulationContext` over a fresh config copy whose random source
    always returns 0.5 and whose ids are `id-1`, `id-2`, ...
- `config` : a deep copy of the shipped config; tests may mutate it freely.
- `registry` : the shipped event registry (built once per session).
- `small_registry` : a three-event registry for scheduler and clock tests.
- `api_orchestrator` : injects an in-memory orchestrator into the HTTP routes.

Builders for characters, states and scripted random sources live in
`tests/utils.py`.
"""

from __future__ import annotations

import sys
from pathlib import Path


def _ensure_project_root_on_path() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_path()

import pytest

from lineage_sim.api import endpoints
from lineage_sim.core.orchestrator import GameOrchestrator
from lineage_sim.core.ticker import TickerManager
from lineage_sim.data_access.state_store import DataAccessLayer, InMemoryStateStore
from lineage_sim.events.loader import load_default_registry
from tests.utils import fresh_config, minimal_registry, scripted_context


@pytest.fixture
def config():
    return fresh_config()


@pytest.fixture
def ctx(config):
    return scripted_context(config=config)


@pytest.fixture(scope="session")
def registry():
    return load_default_registry()


@pytest.fixture(scope="session")
def small_registry():
    return minimal_registry()


@pytest.fixture
def orchestrator(config):
    """内存存储的编排器；随机源由配置种子决定，结果可复现。"""
    data_access = DataAccessLayer(config=config, store=InMemoryStateStore())
    return GameOrchestrator(data_access, registry=load_default_registry())


@pytest.fixture
def api_orchestrator(orchestrator, monkeypatch):
    """把内存编排器与 ticker 注入路由模块，返回该编排器。

    示例：
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/health")
    """
    monkeypatch.setattr(endpoints, "_orchestrator", orchestrator)
    monkeypatch.setattr(endpoints, "_ticker", TickerManager(orchestrator, 0.01))
    return orchestrator
