# 代碼功能說明: 單執行緒事件循環調度器（延遲執行 / 週期執行 / 協程派發）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""基於 asyncio 事件循環的調度器。

所有領域狀態（請求台帳、提供商註冊表、快取）只在事件循環執行緒上被修改，
因此不需要鎖；網路 I/O 由 httpx 在同一循環上以非阻塞方式完成。
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, Optional

import structlog

logger = structlog.get_logger(__name__)


class Handle(ABC):
    """可取消的調度句柄。"""

    @abstractmethod
    def cancel(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        raise NotImplementedError


class Scheduler(ABC):
    """調度器接口：延遲執行、週期執行與協程派發。"""

    @abstractmethod
    def run_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Handle:
        """在 delay 秒後於主循環執行 callback。"""
        raise NotImplementedError

    @abstractmethod
    def run_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> Handle:
        """每 interval 秒於主循環執行 callback。"""
        raise NotImplementedError

    @abstractmethod
    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        """在主循環上派發協程。"""
        raise NotImplementedError


class _TimerHandle(Handle):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class _RepeatingHandle(Handle):
    """自我重排的週期句柄。"""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        callback: Callable[..., Any],
        args: tuple,
    ):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._args = args
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def start(self) -> None:
        self._timer = self._loop.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            self._callback(*self._args)
        except Exception as exc:
            # 週期任務失敗不應中斷後續調度
            logger.error(
                "Repeating task failed",
                callback=getattr(self._callback, "__name__", repr(self._callback)),
                error=str(exc),
                exc_info=True,
            )
        if not self._cancelled:
            self.start()

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """asyncio 事件循環上的調度器實現。"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        初始化調度器。

        Args:
            loop: 事件循環（可選，默認使用當前運行中的循環）
        """
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def run_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Handle:
        return _TimerHandle(self.loop.call_later(max(delay, 0.0), callback, *args))

    def run_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> Handle:
        if interval <= 0:
            raise ValueError("Repeating interval must be positive")
        handle = _RepeatingHandle(self.loop, interval, callback, args)
        handle.start()
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        return self.loop.create_task(coro)
