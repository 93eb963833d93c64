# 代碼功能說明: AI 回覆快取（正規化查詢雜湊鍵、TTL、JSON 持久化）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""AI 回覆快取。

以 md5(strip().lower()) 為鍵，過期項在讀取時惰性淘汰；可選 JSON 檔案持久化。
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

CACHE_FILENAME = "response_cache.json"
SAVE_EVERY = 10


def cache_key(query: str) -> str:
    """正規化查詢（去空白、小寫）並計算雜湊。"""
    return hashlib.md5(query.strip().lower().encode("utf-8")).hexdigest()


class ResponseCache:
    """AI 回覆快取。"""

    def __init__(
        self,
        ttl: float = 3600,
        path: Optional[Union[str, Path]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        初始化快取。

        Args:
            ttl: 存活秒數
            path: 持久化 JSON 檔案路徑（可選，None 表示僅記憶體）
            clock: 時鐘函數（使用牆鐘時間，以便跨重啟保留到期時間）
        """
        self.ttl = float(ttl)
        self.path = Path(path) if path else None
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}

    @property
    def size(self) -> int:
        return len(self._entries)

    def get(self, query: str) -> Optional[str]:
        key = cache_key(query)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry["expires"] <= self._clock():
            del self._entries[key]
            return None
        return entry["response"]

    def put(self, query: str, response: str) -> None:
        self._entries[cache_key(query)] = {
            "query": query,
            "response": response,
            "expires": self._clock() + self.ttl,
        }
        if self.path is not None and len(self._entries) % SAVE_EVERY == 0:
            self.save()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry["expires"] <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        if self.path is not None:
            self.save()

    def load(self) -> int:
        """從檔案載入未過期的項目，返回載入數量。"""
        if self.path is None or not self.path.exists():
            return 0
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load response cache from %s: %s", self.path, exc)
            return 0
        if not isinstance(data, dict):
            return 0

        now = self._clock()
        loaded = 0
        for key, entry in data.items():
            if not isinstance(entry, dict):
                continue
            try:
                expires = float(entry.get("expires", 0))
            except (TypeError, ValueError):
                continue
            if expires > now and isinstance(entry.get("response"), str):
                self._entries[key] = {
                    "query": entry.get("query", ""),
                    "response": entry["response"],
                    "expires": expires,
                }
                loaded += 1
        logger.debug("Loaded %d valid cache entries", loaded)
        return loaded

    def save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._entries, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to save response cache to %s: %s", self.path, exc)
            return
        logger.debug("Saved %d cache entries", len(self._entries))
