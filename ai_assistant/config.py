# 代碼功能說明: 讀取 AI 助手 config.yml 的通用工具（點路徑讀寫、環境變數覆蓋）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""提供專案級設定檔載入功能。"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "AI_ASSISTANT_CONFIG_PATH"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for a Minecraft Bedrock server. "
    "Answer questions about crafting, building, and the server concisely."
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_providers": {
        "default_provider": "openai",
        "openai": {
            "enabled": False,
            "api_key": "YOUR_OPENAI_API_KEY",
            "model": "gpt-3.5-turbo",
            "temperature": 0.7,
            "max_tokens": 500,
            "timeout": 30,
        },
        "openrouter": {
            "enabled": False,
            "api_key": "YOUR_OPENROUTER_API_KEY",
            "model": "openai/gpt-3.5-turbo",
            "temperature": 0.7,
            "max_tokens": 500,
            "timeout": 30,
            "referer": "https://github.com/pmmp-ai-assistant",
            "title": "PocketMine AI Assistant",
        },
        "anthropic": {
            "enabled": False,
            "api_key": "YOUR_ANTHROPIC_API_KEY",
            "model": "claude-3-haiku-20240307",
            "temperature": 0.7,
            "max_tokens": 500,
            "timeout": 30,
        },
        "google": {
            "enabled": False,
            "api_key": "YOUR_GOOGLE_API_KEY",
            "model": "gemini-1.5-flash",
            "temperature": 0.7,
            "max_tokens": 500,
            "timeout": 30,
        },
        "local": {
            "enabled": False,
            "endpoint": "http://localhost:8080/v1/completions",
            "api_key": "",
            "model": "local-model",
            "temperature": 0.7,
            "max_tokens": 500,
            "timeout": 30,
        },
    },
    "prompts": {
        "default_system_prompt": DEFAULT_SYSTEM_PROMPT,
        "custom_system_prompt": "",
        "include_server_info": True,
        "include_server_features": True,
        "max_conversation_history": 10,
    },
    "history": {
        "max_sessions": 10,
        "max_messages_per_session": 50,
    },
    "server": {
        "name": "Bedrock Server",
        "description": "",
        "owner": "",
        "rules": [],
    },
    "server_features": {},
    "advanced": {
        "debug": False,
        "log_interactions": True,
        "cache_responses": True,
        "cache_duration": 3600,
        "cache_save_interval": 300,
        "max_response_length": 1000,
        "failover_notice": True,
        "request_cleanup_interval": 60,
        "cancelled_request_retention": 3600,
        "cainfo_path": "",
        "rate_limit": {
            "enabled": True,
            "max_requests": 10,
            "time_window": 60,
        },
        "http": {
            "max_retries": 2,
            "connect_timeout": 10,
            "prefer_ipv4": True,
            "keepalive_expiry": 30,
        },
    },
}

# 環境變數 → 配置路徑
ENV_OVERRIDES: Dict[str, str] = {
    "OPENAI_API_KEY": "api_providers.openai.api_key",
    "ANTHROPIC_API_KEY": "api_providers.anthropic.api_key",
    "GOOGLE_API_KEY": "api_providers.google.api_key",
    "OPENROUTER_API_KEY": "api_providers.openrouter.api_key",
    "LOCAL_AI_ENDPOINT": "api_providers.local.endpoint",
    "LOCAL_AI_API_KEY": "api_providers.local.api_key",
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML config at {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {path}")
    return data


class AssistantConfig:
    """AI 助手配置，支援點路徑讀寫。"""

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        path: Optional[Union[str, Path]] = None,
        *,
        use_env: bool = True,
    ):
        """
        初始化配置。

        Args:
            data: 覆蓋默認值的配置字典（可選）
            path: 配置文件路徑（save() 時寫回）
            use_env: 是否套用環境變數覆蓋
        """
        self.path = Path(path) if path else None
        self._data = _deep_merge(DEFAULT_CONFIG, data or {})
        if use_env:
            self._apply_env_overrides()

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None, *, use_env: bool = True) -> "AssistantConfig":
        """
        依序嘗試 參數路徑 → AI_ASSISTANT_CONFIG_PATH → 僅默認值。

        Returns:
            AssistantConfig 實例
        """
        if use_env:
            load_dotenv()

        candidate = path or os.getenv(CONFIG_PATH_ENV)
        if not candidate:
            logger.info("No config file given, using built-in defaults")
            return cls(path=None, use_env=use_env)

        resolved = Path(candidate).expanduser()
        if not resolved.exists():
            logger.warning("Config file not found: %s, using defaults", resolved)
            return cls(path=resolved, use_env=use_env)

        logger.info("Loaded assistant config from: %s", resolved)
        return cls(_read_yaml(resolved), path=resolved, use_env=use_env)

    def _apply_env_overrides(self) -> None:
        for env_name, dotted in ENV_OVERRIDES.items():
            value = os.getenv(env_name, "").strip()
            if value:
                self.set_nested(dotted, value)

    def get_nested(self, dotted_path: str, default: Any = None) -> Any:
        """
        取得巢狀設定值，若鍵不存在可回傳預設值。

        Args:
            dotted_path: 點路徑，例如 "advanced.rate_limit.enabled"
            default: 預設值
        """
        return self.get_section(*dotted_path.split("."), default=default)

    def get_section(self, *keys: str, default: Any = None) -> Any:
        node: Any = self._data
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set_nested(self, dotted_path: str, value: Any) -> None:
        keys = dotted_path.split(".")
        node = self._data
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self) -> None:
        """寫回 YAML 配置文件（未指定路徑時忽略）。"""
        if self.path is None:
            logger.debug("Config has no backing file, skip save")
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(self._data, fh, allow_unicode=True, sort_keys=False)
