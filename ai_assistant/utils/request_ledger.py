# 代碼功能說明: 請求台帳（活躍 / 已取消 / 待處理異步調用 / 表單上下文 / 待查看回覆）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""請求台帳。

進程內的鍵值表，以擁有者（玩家名或 SYSTEM）與請求 ID 為鍵。
所有操作都不拋出異常：不存在的鍵僅返回 None / False。
"""

from __future__ import annotations

import time
import uuid
from typing import Dict, Optional

import structlog

from ..models import (
    CancelledRecord,
    FormContext,
    PendingAsyncCall,
    ReadyResponse,
    Request,
    RequestStatus,
)

logger = structlog.get_logger(__name__)


def generate_request_id() -> str:
    """生成唯一請求 ID。"""
    return f"req_{uuid.uuid4().hex}"


class RequestLedger:
    """請求台帳。"""

    def __init__(self) -> None:
        self._active: Dict[str, Request] = {}
        self._cancelled: Dict[str, CancelledRecord] = {}
        self._pending: Dict[str, PendingAsyncCall] = {}
        self._form_contexts: Dict[str, FormContext] = {}
        self._ready: Dict[str, ReadyResponse] = {}

    # ---- 活躍請求 ----

    def track(self, owner_key: str, request_id: str, query: str) -> Request:
        """
        建立活躍請求，覆蓋該擁有者先前的活躍項（後寫者勝）。

        Args:
            owner_key: 擁有者
            request_id: 請求 ID
            query: 原始查詢

        Returns:
            新建立的 Request
        """
        previous = self._active.get(owner_key)
        if previous is not None and previous.id != request_id:
            logger.debug(
                "Overwriting active request",
                owner=owner_key,
                previous_id=previous.id,
                request_id=request_id,
            )
        request = Request(id=request_id, owner_key=owner_key, query=query)
        self._active[owner_key] = request
        logger.debug("Tracking request", owner=owner_key, request_id=request_id)
        return request

    def complete(self, owner_key: str, request_id: str) -> bool:
        """僅當活躍項 ID 相符時移除，避免完成已被取代的請求。"""
        request = self._active.get(owner_key)
        if request is None or request.id != request_id:
            return False
        request.status = RequestStatus.COMPLETED
        del self._active[owner_key]
        logger.debug(
            "Request completed",
            owner=owner_key,
            request_id=request_id,
            duration=round(time.monotonic() - request.start_time, 3),
        )
        return True

    def cancel(self, owner_key: str) -> bool:
        """將活躍項移入已取消集合；返回是否有請求被取消。"""
        request = self._active.pop(owner_key, None)
        if request is None:
            return False
        now = time.monotonic()
        request.status = RequestStatus.CANCELLED
        self._cancelled[request.id] = CancelledRecord(
            request_id=request.id,
            owner_key=owner_key,
            query=request.query,
            cancel_time=now,
            duration=now - request.start_time,
        )
        logger.info("Request cancelled", owner=owner_key, request_id=request.id)
        return True

    def is_cancelled(self, request_id: str) -> bool:
        return request_id in self._cancelled

    def has_active(self, owner_key: str) -> bool:
        return owner_key in self._active

    def get_active(self, owner_key: str) -> Optional[Request]:
        return self._active.get(owner_key)

    # ---- 待處理異步調用 ----

    def set_pending(self, request_id: str, call: PendingAsyncCall) -> None:
        self._pending[request_id] = call

    def get_pending(self, request_id: str) -> Optional[PendingAsyncCall]:
        return self._pending.get(request_id)

    def remove_pending(self, request_id: str) -> bool:
        return self._pending.pop(request_id, None) is not None

    # ---- 表單上下文 ----

    def set_form_context(self, owner_key: str, context: FormContext) -> None:
        self._form_contexts[owner_key] = context

    def get_form_context(self, owner_key: str) -> Optional[FormContext]:
        return self._form_contexts.get(owner_key)

    def clear_form_context(self, owner_key: str) -> bool:
        return self._form_contexts.pop(owner_key, None) is not None

    # ---- 待查看回覆 ----

    def set_ready_response(self, owner_key: str, question: str, response: str) -> None:
        self._ready[owner_key] = ReadyResponse(question=question, response=response)

    def has_ready_response(self, owner_key: str) -> bool:
        return owner_key in self._ready

    def get_ready_response(self, owner_key: str) -> Optional[ReadyResponse]:
        """查看但不消費。"""
        return self._ready.get(owner_key)

    def consume_ready_response(self, owner_key: str) -> Optional[ReadyResponse]:
        """讀取並清除。"""
        return self._ready.pop(owner_key, None)

    def clear_ready_response(self, owner_key: str) -> bool:
        return self._ready.pop(owner_key, None) is not None

    # ---- 維護 ----

    def cleanup_expired(self, max_age_seconds: float) -> int:
        """
        清除超過保留時間的取消記錄。

        Args:
            max_age_seconds: 保留秒數

        Returns:
            清除的記錄數
        """
        cutoff = time.monotonic() - max_age_seconds
        expired = [rid for rid, record in self._cancelled.items() if record.cancel_time < cutoff]
        for rid in expired:
            del self._cancelled[rid]
        if expired:
            logger.debug("Swept cancelled requests", count=len(expired))
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {
            "active": len(self._active),
            "cancelled": len(self._cancelled),
            "pending": len(self._pending),
            "form_contexts": len(self._form_contexts),
            "ready_responses": len(self._ready),
        }
