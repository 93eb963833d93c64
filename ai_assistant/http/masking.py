# 代碼功能說明: HTTP 日誌與錯誤訊息的憑證遮罩工具
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""遮罩 Authorization / API Key 等長期憑證，確保不進入日誌與玩家可見的錯誤訊息。"""

from __future__ import annotations

import re
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

REDACTED = "<REDACTED>"

SENSITIVE_HEADERS = frozenset(
    {"authorization", "proxy-authorization", "x-api-key", "api-key", "x-goog-api-key"}
)

# structlog 事件欄位名（小寫）
SENSITIVE_KEYS = frozenset(
    {"authorization", "api_key", "apikey", "x-api-key", "x_api_key", "token", "secret"}
)

_URL_KEY_PATTERN = re.compile(r"([?&](?:key|api_key|apikey)=)[^&#\s]+", re.IGNORECASE)

HeaderLike = Union[Mapping[str, str], Sequence[str], Sequence[Tuple[str, str]]]


def iter_header_pairs(headers: HeaderLike) -> List[Tuple[str, str]]:
    """將 dict / "Key: value" 行 / (key, value) 元組統一為 (key, value) 列表。"""
    pairs: List[Tuple[str, str]] = []
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            pairs.append((str(key).strip(), str(value).strip()))
        return pairs

    for item in headers:
        if isinstance(item, tuple) and len(item) == 2:
            pairs.append((str(item[0]).strip(), str(item[1]).strip()))
            continue
        line = str(item).strip()
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        pairs.append((key.strip(), value.strip()))
    return pairs


def _mask_value(key: str, value: str) -> str:
    if key.lower() != "authorization":
        return REDACTED
    scheme = value.split(" ", 1)[0] if " " in value else ""
    return f"{scheme} {REDACTED}" if scheme else REDACTED


def mask_headers(headers: HeaderLike) -> List[str]:
    """返回 "Key: value" 行，敏感標頭值被替換。"""
    masked: List[str] = []
    for key, value in iter_header_pairs(headers):
        if key.lower() in SENSITIVE_HEADERS:
            value = _mask_value(key, value)
        masked.append(f"{key}: {value}")
    return masked


def mask_url(url: str) -> str:
    """遮罩 URL 查詢參數中的金鑰（Google API 以 ?key= 傳遞）。"""
    return _URL_KEY_PATTERN.sub(lambda m: m.group(1) + REDACTED, url)


def collect_secrets(headers: HeaderLike, url: str = "") -> List[str]:
    """從標頭與 URL 擷取需要遮罩的字面值。"""
    secrets: List[str] = []
    for key, value in iter_header_pairs(headers):
        if key.lower() not in SENSITIVE_HEADERS or not value:
            continue
        secrets.append(value)
        if " " in value:
            token = value.split(" ", 1)[1].strip()
            if token:
                secrets.append(token)
    for match in _URL_KEY_PATTERN.finditer(url):
        secret = match.group(0)[len(match.group(1)) :]
        if secret:
            secrets.append(secret)
    # 長的先替換，避免部分覆蓋
    return sorted(set(secrets), key=len, reverse=True)


def redact(text: str, secrets: Iterable[str]) -> str:
    """將文字中出現的憑證字面值替換為 <REDACTED>。"""
    for secret in secrets:
        if secret and len(secret) >= 4:
            text = text.replace(secret, REDACTED)
    return text
