# 代碼功能說明: 非阻塞 HTTP 請求執行器（SSL/CA 配置、暫態失敗重試、單次完成回調）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""非阻塞 HTTP 請求執行器。

每個請求只會觸發一次完成回調；DNS 失敗、連線逾時、429 與 5xx 會以延遲重排的方式重試，
其餘錯誤立即回報。所有日誌與錯誤訊息中的憑證都會被遮罩。
"""

from __future__ import annotations

import asyncio
import json
import ssl
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx
import structlog

from ..models import HttpRequestSpec, HttpResult
from ..scheduler import Handle, Scheduler
from .masking import collect_secrets, iter_header_pairs, mask_headers, mask_url, redact

logger = structlog.get_logger(__name__)

CompletionHandler = Callable[[HttpResult], None]

USER_AGENT = "PocketMine-AI-Assistant/1.0"
MAX_ERROR_BODY = 1000
MAX_RETRY_AFTER = 60
MAX_BACKOFF = 8

_DNS_MARKERS = (
    "could not resolve host",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname provided",
    "getaddrinfo failed",
    "no address associated with hostname",
)


def truncate(text: str, limit: int = MAX_ERROR_BODY) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "... (truncated)"


def looks_like_json(body: str) -> bool:
    stripped = body.strip()
    if not stripped or stripped[0] not in "{[":
        return False
    try:
        json.loads(stripped)
    except ValueError:
        return False
    return True


def normalize_headers(headers: Any, body: str) -> List[Tuple[str, str]]:
    """標準化標頭為 (Key, value)，JSON 請求體自動補上 Content-Type。"""
    pairs = iter_header_pairs(headers or {})
    if looks_like_json(body) and not any(k.lower() == "content-type" for k, _ in pairs):
        pairs.append(("Content-Type", "application/json"))
    return pairs


def parse_retry_after(headers: httpx.Headers) -> int:
    """解析 Retry-After（秒數格式），上限 60 秒；無效值返回 0。"""
    value = headers.get("retry-after", "").strip()
    if not value.isdigit():
        return 0
    return min(int(value), MAX_RETRY_AFTER)


def backoff_delay(retry_number: int, retry_after: int = 0) -> float:
    """第 retry_number 次重試的等待秒數。"""
    if retry_after > 0:
        return float(retry_after)
    return float(min(2**retry_number, MAX_BACKOFF))


def is_retryable_status(http_code: int) -> bool:
    return http_code == 429 or 500 <= http_code < 600


def is_dns_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _DNS_MARKERS)


@dataclass
class RetryState:
    """單一請求跨重試共享的狀態。"""

    request_id: str
    spec: HttpRequestSpec
    headers: List[Tuple[str, str]]
    on_complete: CompletionHandler
    ca_path: str = ""
    secrets: List[str] = field(default_factory=list)
    retries: int = 0
    completed: bool = False


class HttpRequestExecutor:
    """非阻塞 HTTP 請求執行器。"""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        max_retries: int = 2,
        connect_timeout: float = 10.0,
        prefer_ipv4: bool = True,
        keepalive_expiry: float = 30.0,
        ca_path: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化執行器。

        Args:
            scheduler: 主循環調度器（重試透過 run_later 重新派發）
            max_retries: 最大重試次數（總嘗試次數 = max_retries + 1）
            connect_timeout: 連線逾時（秒），與整體逾時分開
            prefer_ipv4: 綁定 IPv4 本地位址以避免雙棧解析卡住
            keepalive_expiry: 連線保活時間（秒）
            ca_path: 默認 CA bundle 路徑
            transport: 自定義傳輸層（測試時注入 httpx.MockTransport）
        """
        self._scheduler = scheduler
        self.max_retries = max(0, max_retries)
        self.connect_timeout = connect_timeout
        self.prefer_ipv4 = prefer_ipv4
        self.keepalive_expiry = keepalive_expiry
        self.ca_path = ca_path
        self._transport = transport
        self._inflight: Set["asyncio.Task[Any]"] = set()
        self._scheduled: Dict[str, Handle] = {}

    def submit(
        self,
        request_id: str,
        spec: HttpRequestSpec,
        on_complete: CompletionHandler,
        *,
        ca_path: Optional[str] = None,
    ) -> None:
        """
        提交請求，立即返回；結果經 on_complete 回傳一次。

        Args:
            request_id: 請求 ID
            spec: HTTP 請求描述
            on_complete: 完成回調（於主循環執行）
            ca_path: CA bundle 路徑（可選，覆蓋默認值）
        """
        headers = normalize_headers(spec.headers, spec.body)
        state = RetryState(
            request_id=request_id,
            spec=spec,
            headers=headers,
            on_complete=on_complete,
            ca_path=self.ca_path if ca_path is None else ca_path,
            secrets=collect_secrets(headers, spec.url),
        )
        logger.info(
            "Preparing HTTP request",
            request_id=request_id,
            url=mask_url(spec.url),
            method=spec.method.upper(),
            timeout=spec.timeout,
            headers=mask_headers(headers),
            body_length=len(spec.body),
            cainfo=state.ca_path or "<none>",
        )
        self._launch(state)

    def _launch(self, state: RetryState) -> None:
        self._scheduled.pop(state.request_id, None)
        try:
            task = self._scheduler.spawn(self._run_attempt(state))
        except Exception as exc:
            logger.error("Failed to submit HTTP task", request_id=state.request_id, error=str(exc))
            self._complete(
                state,
                HttpResult(request_id=state.request_id, error=f"Failed to submit request: {exc}", http_code=0),
            )
            return
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _build_verify(self, url: str, ca_path: str) -> Any:
        if not url.lower().startswith("https://"):
            # 純 HTTP（本地端點）不做憑證驗證
            return False
        if ca_path and Path(ca_path).exists():
            return ssl.create_default_context(cafile=ca_path)
        return True

    def _build_client(self, state: RetryState) -> httpx.AsyncClient:
        timeout = httpx.Timeout(state.spec.timeout, connect=min(self.connect_timeout, state.spec.timeout))
        transport = self._transport
        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                verify=self._build_verify(state.spec.url, state.ca_path),
                http1=True,
                http2=False,
                retries=0,
                local_address="0.0.0.0" if self.prefer_ipv4 else None,
                limits=httpx.Limits(keepalive_expiry=self.keepalive_expiry),
            )
        return httpx.AsyncClient(
            transport=transport,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=3,
            headers={"User-Agent": USER_AGENT},
        )

    async def _run_attempt(self, state: RetryState) -> None:
        spec = state.spec
        method = spec.method.upper()
        try:
            async with self._build_client(state) as client:
                response = await client.request(
                    method,
                    spec.url,
                    headers=state.headers,
                    content=spec.body.encode("utf-8") if spec.body else None,
                )
        except httpx.TimeoutException as exc:
            message = redact(f"Connection timeout: {exc or type(exc).__name__}", state.secrets)
            logger.error("HTTP request timed out", request_id=state.request_id, error=message)
            if self._can_retry(state):
                self._schedule_retry(state)
                return
            self._complete(state, HttpResult(request_id=state.request_id, error=f"Internet request failed: {message}", http_code=0))
            return
        except httpx.HTTPError as exc:
            message = redact(str(exc) or type(exc).__name__, state.secrets)
            logger.error("HTTP transport error", request_id=state.request_id, error=message)
            if is_dns_failure(message) and self._can_retry(state):
                self._schedule_retry(state)
                return
            self._complete(state, HttpResult(request_id=state.request_id, error=f"Internet request failed: {message}", http_code=0))
            return
        except Exception as exc:
            message = redact(str(exc), state.secrets)
            logger.error("Unexpected HTTP failure", request_id=state.request_id, error=message, exc_info=True)
            self._complete(state, HttpResult(request_id=state.request_id, error=f"Unexpected request failure: {message}", http_code=0))
            return

        self._handle_response(state, response)

    def _handle_response(self, state: RetryState, response: httpx.Response) -> None:
        http_code = response.status_code
        body = response.text
        headers = dict(response.headers)

        if http_code >= 400:
            short = redact(truncate(body), state.secrets)
            logger.error("HTTP error response", request_id=state.request_id, http_code=http_code, body=short)
            if is_retryable_status(http_code) and self._can_retry(state):
                self._schedule_retry(state, parse_retry_after(response.headers))
                return
            self._complete(
                state,
                HttpResult(request_id=state.request_id, error=f"HTTP {http_code}: {short}", http_code=http_code, headers=headers),
            )
            return

        logger.info("HTTP request succeeded", request_id=state.request_id, http_code=http_code, response_length=len(body))
        self._complete(
            state,
            HttpResult(request_id=state.request_id, response=body, http_code=http_code, headers=headers),
        )

    def _can_retry(self, state: RetryState) -> bool:
        return state.retries < self.max_retries

    def _schedule_retry(self, state: RetryState, retry_after: int = 0) -> None:
        state.retries += 1
        delay = backoff_delay(state.retries, retry_after)
        logger.info(
            "Retrying HTTP request",
            request_id=state.request_id,
            retry=state.retries,
            delay=delay,
            url=mask_url(state.spec.url),
        )
        self._scheduled[state.request_id] = self._scheduler.run_later(delay, self._launch, state)

    def _complete(self, state: RetryState, result: HttpResult) -> None:
        if state.completed:
            logger.warning("Duplicate completion suppressed", request_id=state.request_id)
            return
        state.completed = True
        if result.error:
            result.error = redact(result.error, state.secrets)
        logger.debug(
            "Triggering completion callback",
            request_id=state.request_id,
            http_code=result.http_code,
            error=result.error,
            response_sample=truncate(redact(result.response or "", state.secrets), 2000),
        )
        try:
            state.on_complete(result)
        except Exception as exc:
            logger.error("Completion callback raised", request_id=state.request_id, error=str(exc), exc_info=True)

    @property
    def pending_count(self) -> int:
        return len(self._inflight) + len(self._scheduled)

    async def drain(self, poll_interval: float = 0.01) -> None:
        """等待所有進行中的嘗試與已排程的重試結束。"""
        while self._inflight or self._scheduled:
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)
            else:
                await asyncio.sleep(poll_interval)
