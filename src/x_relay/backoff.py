"""重连延迟计算。"""

from __future__ import annotations


class Backoff:
    """递增的重连延迟（毫秒），不超过上限。

    mode 为 "exponential" 时每次翻倍，为 "linear" 时每次加上初始值。
    """

    def __init__(
        self,
        start_value: int = 2000,
        max_value: int = 240000,
        mode: str = "exponential",
    ):
        if mode not in ("exponential", "linear"):
            raise ValueError(f"不支持的模式: {mode}")
        self.start_value = start_value
        self.max_value = max_value
        self.mode = mode
        self._value = start_value

    def value(self) -> int:
        return self._value

    def increment(self) -> None:
        if self.mode == "exponential":
            nxt = self._value * 2
        else:
            nxt = self._value + self.start_value
        self._value = min(nxt, self.max_value)

    def reset(self) -> None:
        self._value = self.start_value
