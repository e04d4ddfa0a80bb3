"""可注入的随机源，保证给定种子时仿真结果可复现。"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


class RandomSource:
    """包装任意 ``() -> float`` 的随机函数，返回值位于 [0, 1)。

    所有随机决策都只通过 :meth:`random` 取数，因此测试可以传入一个脚本化的
    序列来精确控制分支。
    """

    def __init__(self, draw: Callable[[], float]) -> None:
        self._draw = draw

    @classmethod
    def seeded(cls, seed: Optional[int] = None) -> "RandomSource":
        rng = np.random.default_rng(seed)
        return cls(lambda: float(rng.random()))

    def random(self) -> float:
        return float(self._draw())

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()

    def randint(self, low: int, high: int) -> int:
        """返回闭区间 [low, high] 内的整数。"""
        if high <= low:
            return low
        return low + min(int(self.random() * (high - low + 1)), high - low)

    def chance(self, probability: float) -> bool:
        return self.random() < probability

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("cannot choose from an empty sequence")
        index = min(int(self.random() * len(items)), len(items) - 1)
        return items[index]

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """Fisher-Yates 洗牌，返回新列表。"""
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = min(int(self.random() * (i + 1)), i)
            result[i], result[j] = result[j], result[i]
        return result
