# 代碼功能說明: 伺服器上下文（伺服器資訊、相關功能檢索、即時統計）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""伺服器上下文提供者。

為系統提示詞提供伺服器資訊與按查詢相關度排序的伺服器功能說明。
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from ..config import AssistantConfig

logger = logging.getLogger(__name__)

MAX_FEATURES = 5

_SPLIT_PATTERN = re.compile(r"[\s\-_.,!?;:()\[\]/\\]+")

StatsProvider = Callable[[], Dict[str, Any]]


class ServerContext(Protocol):
    """編排器使用的伺服器上下文接口。"""

    def server_info(self, owner: Optional[str]) -> str: ...

    def relevant_features(self, query: str) -> str: ...

    def stats(self) -> Dict[str, Any]: ...


def _normalize(text: str) -> str:
    lowered = text.lower().replace("_", " ").replace("-", " ")
    return re.sub(r"\s+", " ", lowered).strip()


def _field_weight(field_name: str) -> float:
    name = field_name.lower()
    if name in ("feature_name", "name"):
        return 3.0
    if name == "category":
        return 2.5
    if "command" in name:
        return 2.8
    if "title" in name:
        return 2.2
    if "description" in name:
        return 2.0
    if "tutorial" in name:
        return 1.8
    if "help" in name:
        return 1.7
    if "info" in name:
        return 1.5
    return 1.0


def _flatten(data: Any, prefix: str = "") -> Dict[str, str]:
    """遞迴抽出所有文字欄位，鍵為路徑。"""
    fields: Dict[str, str] = {}
    if isinstance(data, dict):
        for key, value in data.items():
            path = f"{prefix}_{key}" if prefix else str(key)
            fields.update(_flatten(value, path))
    elif isinstance(data, list):
        for index, value in enumerate(data):
            fields.update(_flatten(value, f"{prefix}_{index}" if prefix else str(index)))
    elif data is not None:
        fields[prefix or "text"] = _normalize(str(data))
    return fields


def _humanize(key: str) -> str:
    return str(key).replace("_", " ").title()


def _format_data(data: Any, level: int = 0) -> str:
    indent = "  " * level
    if isinstance(data, dict):
        lines = []
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                lines.append(f"{indent}{_humanize(key)}:\n{_format_data(value, level + 1)}")
            else:
                lines.append(f"{indent}{_humanize(key)}: {value}\n")
        return "".join(lines)
    if isinstance(data, list):
        return "".join(f"{indent}* {item}\n" for item in data)
    return f"{indent}{data}\n"


class ConfigServerContext:
    """從配置讀取伺服器資訊與功能目錄。"""

    def __init__(self, config: AssistantConfig, stats_provider: Optional[StatsProvider] = None):
        """
        初始化伺服器上下文。

        Args:
            config: 助手配置（讀取 server.* 與 server_features）
            stats_provider: 即時統計回調（線上人數、TPS 等，可選）
        """
        self._config = config
        self._stats_provider = stats_provider

    @property
    def features(self) -> Dict[str, Dict[str, Any]]:
        features = self._config.get_section("server_features", default={})
        return features if isinstance(features, dict) else {}

    def stats(self) -> Dict[str, Any]:
        if self._stats_provider is None:
            return {}
        try:
            return dict(self._stats_provider())
        except Exception as exc:
            logger.warning("Stats provider failed: %s", exc)
            return {}

    def server_info(self, owner: Optional[str] = None) -> str:
        """構建提示詞用的伺服器資訊文字。"""
        lines = [
            f"Server Name: {self._config.get_nested('server.name', '')}",
            f"Description: {self._config.get_nested('server.description', '')}",
            f"Owner: {self._config.get_nested('server.owner', '')}",
        ]
        rules = self._config.get_nested("server.rules", []) or []
        if rules:
            lines.append("Rules:")
            lines.extend(f"{index}. {rule}" for index, rule in enumerate(rules, start=1))

        stats = self.stats()
        if "online_players" in stats:
            lines.append(f"Players: {stats['online_players']}/{stats.get('max_players', '?')}")
        if "tps" in stats:
            lines.append(f"TPS: {stats['tps']}")
        if "memory" in stats:
            lines.append(f"Memory: {stats['memory']}")
        if owner:
            lines.append(f"Asking Player: {owner}")
        return "\n".join(lines) + "\n"

    def _score(self, words: List[str], phrase: str, category: str, name: str, data: Any) -> float:
        fields = {"category": _normalize(category), "feature_name": _normalize(name)}
        fields.update(_flatten(data))

        score = 0.0
        for field_name, content in fields.items():
            if not content:
                continue
            weight = _field_weight(field_name)
            for word in words:
                if re.search(r"\b" + re.escape(word) + r"\b", content):
                    score += weight * 2.0
                elif word in content:
                    score += weight
            if phrase and phrase in content:
                score += weight * 5.0
        return score

    def rank_features(self, query: str) -> List[Tuple[str, str, Any, float]]:
        """按相關度排序的 (category, name, data, score) 列表。"""
        phrase = _normalize(query)
        words = [w for w in _SPLIT_PATTERN.split(query.lower()) if len(w) >= 2 and not w.isdigit()]
        if not words:
            return []

        ranked = []
        for category, entries in self.features.items():
            if not isinstance(entries, dict):
                continue
            for name, data in entries.items():
                score = self._score(words, phrase, str(category), str(name), data)
                if score > 0:
                    ranked.append((str(category), str(name), data, score))
        ranked.sort(key=lambda item: item[3], reverse=True)
        return ranked

    def relevant_features(self, query: str) -> str:
        """
        構建 "RELEVANT SERVER FEATURES" 提示區塊。

        Args:
            query: 玩家查詢

        Returns:
            最多 5 個功能的說明；無匹配時返回空字串
        """
        ranked = self.rank_features(query)[:MAX_FEATURES]
        if not ranked:
            return ""

        grouped: Dict[str, List[Tuple[str, Any]]] = {}
        for category, name, data, _ in ranked:
            grouped.setdefault(category, []).append((name, data))

        parts = ["RELEVANT SERVER FEATURES:\n"]
        for category, entries in grouped.items():
            header = f"CATEGORY: {category.replace('_', ' ').upper()}"
            parts.append(f"\n{header}\n{'-' * len(header)}\n")
            for name, data in entries:
                parts.append(f"\nFeature: {_humanize(name)}\n{_format_data(data)}")
        return "".join(parts).strip()
