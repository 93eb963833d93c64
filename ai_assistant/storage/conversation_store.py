# 代碼功能說明: 玩家對話歷史存儲（按擁有者與會話的 JSON 文件）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""對話歷史存儲。

每個擁有者一個目錄（<data_dir>/history/<owner>/），內含 sessions.json（當前會話指針與
各會話元數據）與每個會話一個 <session_id>.json。擁有者名稱不區分大小寫；無法直接作為
文件名的名稱附加短雜湊以避免碰撞。未指定數據目錄時僅保存在記憶體。

存儲保留每個會話最新的 max_messages 條；get() 只返回最新的 max_history 條作為提示上下文。
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

SESSIONS_FILENAME = "sessions.json"
TITLE_LENGTH = 30

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_.-]+")
_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def normalize_owner(owner: str) -> str:
    """玩家名不區分大小寫。"""
    return owner.strip().lower()


def owner_dirname(owner: str) -> str:
    """擁有者目錄名；經過替換的名稱附加雜湊，確保不同擁有者不會共用目錄。"""
    key = normalize_owner(owner)
    stem = _UNSAFE_CHARS.sub("_", key).strip(".")
    if stem == key and stem:
        return stem
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()[:8]
    return f"{stem or '_'}~{digest}"


def new_session_id() -> str:
    return time.strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]


def default_title(created: float) -> str:
    return "Chat Session " + time.strftime("%Y-%m-%d %H:%M", time.localtime(created))


class ConversationStore:
    """按擁有者與會話的對話歷史存儲。"""

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        *,
        max_history: int = 10,
        max_messages: int = 50,
        max_sessions: int = 10,
        autosave: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """
        初始化存儲。

        Args:
            data_dir: 數據目錄（可選）
            max_history: get() 返回的最新條目上限
            max_messages: 每個會話保留的條目上限
            max_sessions: 每個擁有者保留的會話上限（超出時移除最久未使用的會話）
            autosave: 寫入後是否立即寫檔
            clock: 時間來源（測試時注入）
        """
        self.history_dir = Path(data_dir) / "history" if data_dir else None
        self.max_history = max(0, int(max_history))
        self.max_messages = max(1, int(max_messages))
        self.max_sessions = max(1, int(max_sessions))
        self.autosave = autosave
        self._clock = clock
        # 擁有者鍵 -> {"current": 會話 ID, "sessions": {會話 ID: 元數據}}
        self._sessions: Dict[str, Dict[str, Any]] = {}
        # 擁有者鍵 -> {會話 ID: 條目列表}
        self._conversations: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}

    # ---- 路徑與載入 ----

    def _owner_dir(self, key: str) -> Optional[Path]:
        if self.history_dir is None:
            return None
        return self.history_dir / owner_dirname(key)

    def _session_path(self, key: str, session_id: str) -> Optional[Path]:
        owner_dir = self._owner_dir(key)
        if owner_dir is None:
            return None
        return owner_dir / f"{session_id}.json"

    def _read_json(self, path: Optional[Path], key: str) -> Any:
        if path is None or not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load conversation data for %s from %s: %s", key, path.name, exc)
            return None

    def _state(self, key: str) -> Dict[str, Any]:
        if key in self._sessions:
            return self._sessions[key]

        state: Dict[str, Any] = {"current": "", "sessions": {}}
        owner_dir = self._owner_dir(key)
        data = self._read_json(owner_dir / SESSIONS_FILENAME if owner_dir else None, key)
        if isinstance(data, dict) and isinstance(data.get("sessions"), dict):
            state["sessions"] = {
                sid: meta
                for sid, meta in data["sessions"].items()
                if _SESSION_ID.match(sid) and isinstance(meta, dict)
            }
            current = data.get("current") or ""
            state["current"] = current if current in state["sessions"] else ""
        self._sessions[key] = state
        self._conversations.setdefault(key, {})
        return state

    def _entries(self, key: str, session_id: str) -> List[Dict[str, Any]]:
        loaded = self._conversations.setdefault(key, {})
        if session_id in loaded:
            return loaded[session_id]

        entries: List[Dict[str, Any]] = []
        data = self._read_json(self._session_path(key, session_id), key)
        if isinstance(data, list):
            entries = [e for e in data if isinstance(e, dict) and "query" in e and "response" in e]
        loaded[session_id] = entries
        return entries

    def _current(self, key: str) -> str:
        state = self._state(key)
        if not state["current"]:
            return self._create(key)
        return state["current"]

    def _resolve(self, key: str, session_id: Optional[str]) -> Optional[str]:
        if session_id is None:
            return self._current(key)
        return session_id if session_id in self._state(key)["sessions"] else None

    # ---- 會話管理 ----

    def _create(self, key: str, title: Optional[str] = None) -> str:
        state = self._state(key)
        session_id = new_session_id()
        while session_id in state["sessions"]:
            session_id = new_session_id()
        now = self._clock()
        state["sessions"][session_id] = {
            "title": title or default_title(now),
            "custom_title": bool(title),
            "created": int(now),
            "last_used": now,
            "message_count": 0,
        }
        state["current"] = session_id
        self._conversations.setdefault(key, {})[session_id] = []

        if len(state["sessions"]) > self.max_sessions:
            others = [sid for sid in state["sessions"] if sid != session_id]
            oldest = min(others, key=lambda sid: state["sessions"][sid]["last_used"])
            self._drop_session(key, oldest)
            logger.info("Removed least recently used conversation session %s for %s", oldest, key)

        self._save_metadata(key)
        return session_id

    def create_session(self, owner: str, title: Optional[str] = None) -> str:
        """建立新會話並設為當前會話，返回會話 ID。"""
        return self._create(normalize_owner(owner), title)

    def current_session(self, owner: str) -> Optional[str]:
        return self._state(normalize_owner(owner))["current"] or None

    def set_current_session(self, owner: str, session_id: str) -> bool:
        key = normalize_owner(owner)
        state = self._state(key)
        if session_id not in state["sessions"]:
            return False
        state["current"] = session_id
        state["sessions"][session_id]["last_used"] = self._clock()
        self._save_metadata(key)
        return True

    def list_sessions(self, owner: str) -> Dict[str, Dict[str, Any]]:
        """返回 {會話 ID: 元數據} 的副本，最近使用的在前。"""
        sessions = self._state(normalize_owner(owner))["sessions"]
        ordered = sorted(sessions.items(), key=lambda item: item[1].get("last_used", 0), reverse=True)
        return {sid: dict(meta) for sid, meta in ordered}

    def rename_session(self, owner: str, session_id: str, title: str) -> bool:
        key = normalize_owner(owner)
        meta = self._state(key)["sessions"].get(session_id)
        if meta is None or not title.strip():
            return False
        meta["title"] = title.strip()
        meta["custom_title"] = True
        self._save_metadata(key)
        return True

    def _drop_session(self, key: str, session_id: str) -> None:
        state = self._state(key)
        state["sessions"].pop(session_id, None)
        self._conversations.get(key, {}).pop(session_id, None)
        self._unlink(self._session_path(key, session_id), key)
        if state["current"] == session_id:
            remaining = state["sessions"]
            state["current"] = max(remaining, key=lambda sid: remaining[sid]["last_used"]) if remaining else ""

    def delete_session(self, owner: str, session_id: str) -> bool:
        """刪除會話；若為當前會話，改指向最近使用的其餘會話。"""
        key = normalize_owner(owner)
        if session_id not in self._state(key)["sessions"]:
            return False
        self._drop_session(key, session_id)
        self._save_metadata(key)
        return True

    def search(self, owner: str, text: str) -> Dict[str, Dict[str, Any]]:
        """在擁有者的所有會話中不分大小寫搜尋提問與回覆。

        Returns:
            {會話 ID: 元數據 + matches=[{"index", "message"}]}，僅包含有命中的會話
        """
        needle = text.strip().lower()
        if not needle:
            return {}
        key = normalize_owner(owner)
        results: Dict[str, Dict[str, Any]] = {}
        for session_id, meta in self._state(key)["sessions"].items():
            matches = [
                {"index": index, "message": dict(entry)}
                for index, entry in enumerate(self._entries(key, session_id))
                if needle in str(entry["query"]).lower() or needle in str(entry["response"]).lower()
            ]
            if matches:
                results[session_id] = {**meta, "matches": matches}
        return results

    # ---- 對話條目 ----

    def get(self, owner: str, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """返回會話（默認為當前會話）最新的 max_history 條對話，舊的在前。"""
        key = normalize_owner(owner)
        if session_id is None and not self._state(key)["current"]:
            return []
        resolved = self._resolve(key, session_id)
        if resolved is None or self.max_history == 0:
            return []
        entries = self._entries(key, resolved)
        return [dict(entry) for entry in entries[-self.max_history :]]

    def append(self, owner: str, query: str, response: str, session_id: Optional[str] = None) -> str:
        """寫入一輪對話（默認為當前會話，沒有時自動建立），返回會話 ID。

        Raises:
            KeyError: 指定的會話不存在
        """
        key = normalize_owner(owner)
        resolved = self._resolve(key, session_id)
        if resolved is None:
            raise KeyError(f"Unknown conversation session: {session_id}")

        entries = self._entries(key, resolved)
        entries.append({"query": query, "response": response, "timestamp": int(self._clock())})
        if len(entries) > self.max_messages:
            del entries[: len(entries) - self.max_messages]

        meta = self._state(key)["sessions"][resolved]
        meta["last_used"] = self._clock()
        meta["message_count"] = len(entries)
        if len(entries) == 1 and not meta.get("custom_title"):
            first = str(entries[0]["query"])
            meta["title"] = first[:TITLE_LENGTH] + ("..." if len(first) > TITLE_LENGTH else "")

        if self.autosave:
            self._save_session(key, resolved)
            self._save_metadata(key)
        return resolved

    def clear(self, owner: str, session_id: Optional[str] = None) -> bool:
        """清空會話（默認為當前會話）的條目並刪除其文件，會話本身保留。"""
        key = normalize_owner(owner)
        if session_id is None and not self._state(key)["current"]:
            return False
        resolved = self._resolve(key, session_id)
        if resolved is None:
            return False
        self._conversations.setdefault(key, {})[resolved] = []
        self._state(key)["sessions"][resolved]["message_count"] = 0
        self._unlink(self._session_path(key, resolved), key)
        self._save_metadata(key)
        return True

    # ---- 持久化 ----

    def _unlink(self, path: Optional[Path], key: str) -> None:
        if path is None or not path.exists():
            return
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to delete conversation file for %s: %s", key, exc)

    def _write(self, path: Optional[Path], data: Any, key: str) -> None:
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to save conversation data for %s: %s", key, exc)

    def _save_metadata(self, key: str) -> None:
        if self.autosave:
            owner_dir = self._owner_dir(key)
            self._write(owner_dir / SESSIONS_FILENAME if owner_dir else None, self._sessions[key], key)

    def _save_session(self, key: str, session_id: str) -> None:
        entries = self._conversations.get(key, {}).get(session_id)
        if entries is not None:
            self._write(self._session_path(key, session_id), entries, key)

    def save(self, owner: str) -> None:
        """寫出擁有者已載入的所有會話與元數據。"""
        key = normalize_owner(owner)
        if key not in self._sessions:
            return
        owner_dir = self._owner_dir(key)
        if not self._sessions[key]["sessions"] and (owner_dir is None or not owner_dir.exists()):
            # 只被查詢過、從未寫入的擁有者
            return
        for session_id in list(self._conversations.get(key, {})):
            if session_id in self._sessions[key]["sessions"]:
                self._save_session(key, session_id)
        self._write(owner_dir / SESSIONS_FILENAME if owner_dir else None, self._sessions[key], key)

    def save_all(self) -> None:
        for key in list(self._sessions):
            self.save(key)
