# 代碼功能說明: Pytest 配置和共用 Fixtures（渲染器、調度器、模擬 HTTP 傳輸）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""Pytest 配置和共用 Fixtures"""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from ai_assistant.config import AssistantConfig
from ai_assistant.models import FormKind
from ai_assistant.scheduler import Handle, Scheduler


class RecordingRenderer:
    """記錄所有渲染調用的渲染器。"""

    def __init__(self) -> None:
        self.direct: List[Tuple[str, str, str]] = []
        self.forms: List[Tuple[str, FormKind, str, str]] = []
        self.offline: set = set()

    def render_direct(self, owner: str, question: str, answer: str) -> None:
        self.direct.append((owner, question, answer))

    def render_form(self, owner: str, kind: FormKind, question: str, answer: str) -> None:
        self.forms.append((owner, kind, question, answer))

    def is_online(self, owner: str) -> bool:
        return owner not in self.offline


class _RecordedHandle(Handle):
    def __init__(self, inner: Optional[asyncio.Handle] = None):
        self._inner = inner
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._inner is not None:
            self._inner.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ImmediateScheduler(Scheduler):
    """記錄延遲但立即在下一輪事件循環執行的調度器。"""

    def __init__(self) -> None:
        self.delays: List[float] = []
        self.repeating: List[Tuple[float, Callable[..., Any]]] = []

    def run_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Handle:
        self.delays.append(delay)
        return _RecordedHandle(asyncio.get_running_loop().call_soon(callback, *args))

    def run_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> Handle:
        self.repeating.append((interval, callback))
        return _RecordedHandle()

    def spawn(self, coro):
        return asyncio.get_running_loop().create_task(coro)


class MockAIServer:
    """按主機名分派的模擬上游 API，記錄所有請求。"""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.handlers: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def route(self, host: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handlers[host] = handler

    def json_route(self, host: str, payload: Any, status_code: int = 200) -> None:
        self.route(host, lambda request: httpx.Response(status_code, json=payload))

    def hits(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def body(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            return httpx.Response(404, text="no route")
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def openai_payload(text: str) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def anthropic_payload(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


@pytest.fixture
def renderer() -> RecordingRenderer:
    """記錄型渲染器"""
    return RecordingRenderer()


@pytest.fixture
def scheduler() -> ImmediateScheduler:
    """立即執行的調度器"""
    return ImmediateScheduler()


@pytest.fixture
def ai_server() -> MockAIServer:
    """模擬上游 AI API"""
    return MockAIServer()


@pytest.fixture
def make_config() -> Callable[..., AssistantConfig]:
    """構建不讀取環境變數的配置。"""

    def _make(providers: Optional[Dict[str, Dict[str, Any]]] = None, **sections: Any) -> AssistantConfig:
        data: Dict[str, Any] = {"api_providers": copy.deepcopy(providers or {})}
        for key, value in sections.items():
            data[key] = copy.deepcopy(value)
        data.setdefault("prompts", {}).setdefault("include_server_info", False)
        data["prompts"].setdefault("include_server_features", False)
        return AssistantConfig(data, use_env=False)

    return _make


@pytest.fixture
def payloads() -> Dict[str, Callable[[str], Dict[str, Any]]]:
    """各提供商的成功回應構造器"""
    return {"openai": openai_payload, "anthropic": anthropic_payload}
