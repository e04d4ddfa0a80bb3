"""异步数据访问层及其存储实现。

快照以 JSON 兼容的字典保存，内含 ``content_version``；加载时统一经过
迁移。无法迁移的存档会被删除，并以 :class:`GameNotFoundError` 报告。
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Protocol

from redis.asyncio import Redis

from ..utils.settings import GameConfig, get_game_config
from .migrations import MigrationError, apply_migrations
from .models import GameState, TickLogEntry

logger = logging.getLogger(__name__)


class GameNotFoundError(RuntimeError):
    """访问不存在（或已被丢弃）的存档时抛出。"""

    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game '{game_id}' not found")
        self.game_id = game_id


class StateStore(Protocol):
    """通用状态存储接口，抽象出加载与保存操作。"""

    async def load(self, game_id: str) -> Optional[Dict]:
        """读取快照，不存在时返回 ``None``。"""

    async def store(self, game_id: str, payload: Dict) -> None:
        """持久化快照。"""

    async def delete(self, game_id: str) -> None:
        """删除快照。"""


class InMemoryStateStore:
    """使用内存字典保存数据，主要用于测试或本地运行。"""

    def __init__(self) -> None:
        self._storage: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def load(self, game_id: str) -> Optional[Dict]:
        async with self._lock:
            snapshot = self._storage.get(game_id)
            return copy.deepcopy(snapshot) if snapshot is not None else None

    async def store(self, game_id: str, payload: Dict) -> None:
        async with self._lock:
            self._storage[game_id] = copy.deepcopy(payload)

    async def delete(self, game_id: str) -> None:
        async with self._lock:
            self._storage.pop(game_id, None)


class RedisStateStore:
    """基于 Redis 的 JSON 存储，实现跨进程持久化。"""

    def __init__(self, redis: Redis, prefix: str = "lineage_sim") -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, game_id: str) -> str:
        return f"{self._prefix}:game:{game_id}:state"

    async def load(self, game_id: str) -> Optional[Dict]:
        data = await self._redis.get(self._key(game_id))
        if data is None:
            return None
        return json.loads(data)

    async def store(self, game_id: str, payload: Dict) -> None:
        await self._redis.set(self._key(game_id), json.dumps(payload))

    async def delete(self, game_id: str) -> None:
        await self._redis.delete(self._key(game_id))


@dataclass
class DataAccessLayer:
    """为编排器提供统一入口的数据访问外观类。"""

    config: GameConfig
    store: StateStore
    _tick_logs: Dict[str, Deque[TickLogEntry]] = field(default_factory=dict)
    _log_retention: int = field(default=1000)

    @classmethod
    def with_default_store(
        cls, config: Optional[GameConfig] = None
    ) -> "DataAccessLayer":
        """根据环境变量构建数据访问层，默认回退到纯内存实现。"""
        resolved = config or get_game_config()
        redis_url = os.getenv("LINEAGE_SIM_REDIS_URL")
        if redis_url:
            prefix = os.getenv("LINEAGE_SIM_REDIS_PREFIX", "lineage_sim")
            client = Redis.from_url(redis_url, encoding="utf-8", decode_responses=False)
            logger.info("Using Redis state store at prefix %s", prefix)
            return cls(config=resolved, store=RedisStateStore(client, prefix=prefix))
        return cls(config=resolved, store=InMemoryStateStore())

    @property
    def content_version(self) -> int:
        return self.config.simulation.content_version

    async def save_game(self, state: GameState) -> None:
        await self.store.store(state.game_id, state.model_dump(mode="json"))

    async def load_game(self, game_id: str) -> GameState:
        payload = await self.store.load(game_id)
        if payload is None:
            raise GameNotFoundError(game_id)
        try:
            return apply_migrations(payload, self.content_version)
        except MigrationError:
            logger.warning("Discarding unreadable save %s", game_id, exc_info=True)
            await self.store.delete(game_id)
            self._tick_logs.pop(game_id, None)
            raise GameNotFoundError(game_id)

    async def delete_game(self, game_id: str) -> None:
        if await self.store.load(game_id) is None:
            raise GameNotFoundError(game_id)
        await self.store.delete(game_id)
        self._tick_logs.pop(game_id, None)

    def record_tick_logs(self, game_id: str, logs: List[TickLogEntry]) -> None:
        bucket = self._tick_logs.setdefault(game_id, deque(maxlen=self._log_retention))
        bucket.extend(logs)

    def get_recent_logs(self, game_id: str, limit: Optional[int] = None) -> List[TickLogEntry]:
        entries = list(self._tick_logs.get(game_id, ()))
        if limit is not None and limit > 0:
            entries = entries[-limit:]
        return entries
