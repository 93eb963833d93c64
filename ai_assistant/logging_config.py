# 代碼功能說明: structlog 日誌配置（含敏感值遮罩處理器）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""structlog 日誌配置。

所有事件在輸出前經過 mask_sensitive_values，API 金鑰與 Authorization 標頭不會出現在日誌中。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, MutableMapping

import structlog

from .http.masking import REDACTED, SENSITIVE_KEYS, mask_headers

_HEADER_FIELDS = {"headers", "request_headers", "response_headers"}


def mask_sensitive_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog 處理器：遮罩事件字典中的憑證欄位。"""
    for key in list(event_dict.keys()):
        lowered = key.lower()
        if lowered in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif lowered in _HEADER_FIELDS and isinstance(event_dict[key], (dict, list)):
            event_dict[key] = mask_headers(event_dict[key])
    return event_dict


def configure_logging(debug: bool = False) -> None:
    """
    配置 structlog 與標準 logging。

    Args:
        debug: 是否輸出 DEBUG 級別日誌
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        mask_sensitive_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=False),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_request(request_id: str, owner: str) -> Dict[str, str]:
    """返回請求日誌上下文（供 logger.bind 使用）。"""
    return {"request_id": request_id, "owner": owner}
