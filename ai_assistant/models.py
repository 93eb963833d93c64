# 代碼功能說明: AI 助手核心數據模型（請求、待處理異步調用、表單上下文、HTTP 結果）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""AI 助手核心數據模型。

請求生命週期、異步邊界的上下文保存，以及 HTTP 執行器與提供商適配器之間交換的結果結構。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union

SYSTEM_OWNER = "SYSTEM"


class RequestStatus(str, Enum):
    """請求狀態枚舉"""

    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class FormKind(str, Enum):
    """發起查詢的 UI 來源"""

    DIRECT_COMMAND = "direct_command"
    CHAT = "chat"
    CRAFTING = "crafting"
    BUILDING_CALCULATOR = "building_calculator"
    SERVER_INFO = "server_info"
    MAIN_MENU = "main_menu"


@dataclass
class Request:
    """一次查詢嘗試。"""

    id: str
    owner_key: str
    query: str
    start_time: float = field(default_factory=time.monotonic)
    status: RequestStatus = RequestStatus.PENDING


@dataclass
class CancelledRecord:
    """已取消請求的保留記錄，供遲到的異步回調判斷是否過期。"""

    request_id: str
    owner_key: str
    query: str
    cancel_time: float
    duration: float


@dataclass
class FormContext:
    """記錄查詢由哪個介面發起，用於回覆路由。"""

    kind: FormKind
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_direct(self) -> bool:
        return self.kind == FormKind.DIRECT_COMMAND


@dataclass
class ReadyResponse:
    """稍後查看的回覆槽位。"""

    question: str
    response: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class PendingAsyncCall:
    """跨異步邊界恢復編排所需的全部上下文。"""

    request_id: str
    owner_key: str
    is_player: bool
    query: str
    history: List[Dict[str, Any]]
    system_prompt: str
    server_info: str = ""
    server_features: str = ""
    provider_name: str = ""
    original_provider: str = ""
    remaining_providers: List[str] = field(default_factory=list)
    attempted_providers: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    use_cache: bool = True
    secrets: List[str] = field(default_factory=list)
    submitted_at: float = field(default_factory=time.time)


HeaderInput = Union[Dict[str, str], List[str]]


@dataclass
class HttpRequestSpec:
    """提供商適配器構建的 HTTP 請求描述（純數據，不做 I/O）。"""

    url: str
    method: str = "POST"
    headers: HeaderInput = field(default_factory=dict)
    body: str = ""
    timeout: float = 30.0


@dataclass
class HttpResult:
    """HTTP 執行器的標準化完成結果。"""

    request_id: str
    response: Optional[str] = None
    http_code: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BuildResult:
    """適配器構建請求的結果。"""

    success: bool
    request: Optional[HttpRequestSpec] = None
    error: str = ""

    @classmethod
    def ok(cls, request: HttpRequestSpec) -> "BuildResult":
        return cls(success=True, request=request)

    @classmethod
    def failure(cls, error: str) -> "BuildResult":
        return cls(success=False, error=error)


@dataclass
class ParseResult:
    """適配器解析回應的結果。"""

    success: bool
    content: str = ""
    error: str = ""

    @classmethod
    def ok(cls, content: str) -> "ParseResult":
        return cls(success=True, content=content)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(success=False, error=error)


class Renderer(Protocol):
    """呼叫端渲染器（指令回覆 / 表單）。"""

    def render_direct(self, owner: str, question: str, answer: str) -> None: ...

    def render_form(self, owner: str, kind: FormKind, question: str, answer: str) -> None: ...

    def is_online(self, owner: str) -> bool: ...
