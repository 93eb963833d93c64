# 代碼功能說明: 每擁有者固定窗口限流
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""每擁有者固定窗口限流器。"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """固定窗口限流：窗口到期後計數歸零，並從當下重新開始一個完整窗口。"""

    def __init__(
        self,
        max_requests: int = 10,
        time_window: float = 60.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max(1, int(max_requests))
        self.time_window = float(time_window)
        self.enabled = enabled
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def _window(self, owner: str) -> _Window:
        now = self._clock()
        window = self._windows.get(owner)
        if window is None or now >= window.reset_at:
            window = _Window(count=0, reset_at=now + self.time_window)
            self._windows[owner] = window
        return window

    def check(self, owner: str) -> bool:
        """
        記錄一次請求並判斷是否允許。

        Returns:
            True 表示允許；False 表示已超過限額
        """
        if not self.enabled:
            return True
        window = self._window(owner)
        if window.count >= self.max_requests:
            logger.info("Rate limit exceeded for %s", owner)
            return False
        window.count += 1
        return True

    def remaining(self, owner: str) -> int:
        if not self.enabled:
            return self.max_requests
        return max(0, self.max_requests - self._window(owner).count)

    def reset(self, owner: str) -> None:
        self._windows.pop(owner, None)

    def prune_expired(self) -> int:
        now = self._clock()
        expired = [owner for owner, window in self._windows.items() if now >= window.reset_at]
        for owner in expired:
            del self._windows[owner]
        return len(expired)
