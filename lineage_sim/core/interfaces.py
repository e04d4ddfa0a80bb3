"""接口契约：引擎消费的外部协作者以及贯穿各子模块的运行上下文。

核心推进逻辑只依赖这里定义的抽象：翻译函数、id 生成器与随机源都由宿主注入，
测试时可替换为确定性的实现。
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

from ..utils.localization import translate as default_translate
from ..utils.random_source import RandomSource
from ..utils.settings import GameConfig, get_game_config


class TranslateFn(Protocol):
    """``translate(key, lang, params) -> str``，纯函数，不得修改游戏状态。"""

    def __call__(
        self, key: str, lang: str, params: Optional[Dict[str, Any]] = None
    ) -> str: ...


def _uuid4() -> str:
    return str(uuid.uuid4())


@dataclass
class SimulationContext:
    """单次会话内各 reducer 共享的依赖集合。"""

    rng: RandomSource
    config: GameConfig = field(default_factory=get_game_config)
    new_id: Callable[[], str] = _uuid4
    translate: TranslateFn = default_translate

    @classmethod
    def seeded(
        cls, seed: Optional[int] = None, config: Optional[GameConfig] = None
    ) -> "SimulationContext":
        cfg = config or get_game_config()
        return cls(
            rng=RandomSource.seeded(cfg.simulation.seed if seed is None else seed),
            config=cfg,
        )
