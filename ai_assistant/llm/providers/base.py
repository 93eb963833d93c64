# 代碼功能說明: AI 提供商適配器基類（請求構建 / 回應解析接口與共用工具）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""定義統一的提供商適配器接口。

適配器只做純數據轉換：build_request 產生 HttpRequestSpec，parse_response 從原始回應抽出文字。
兩者都以 BuildResult / ParseResult 回報失敗，不拋出異常。
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...config import AssistantConfig
from ...exceptions import ConfigurationError
from ...models import BuildResult, HttpRequestSpec, HttpResult, ParseResult
from ...utils.text_formatter import ESCAPE, format_text

logger = logging.getLogger(__name__)

History = List[Dict[str, Any]]


class ProviderSettings(BaseModel):
    """單一提供商的配置（api_providers.<key>）。"""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=False, description="是否啟用")
    api_key: str = Field(default="", description="API 金鑰")
    model: str = Field(default="", description="模型名稱")
    temperature: float = Field(default=0.7, description="溫度參數")
    max_tokens: int = Field(default=500, description="最大 Token 數")
    timeout: float = Field(default=30, description="請求逾時（秒）")
    endpoint: str = Field(default="", description="自定義端點（本地模型）")
    referer: str = Field(default="", description="HTTP-Referer 標頭（OpenRouter）")
    title: str = Field(default="", description="X-Title 標頭（OpenRouter）")

    @field_validator("api_key", "endpoint", "model", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """
        驗證溫度參數

        Raises:
            ValueError: 溫度值不在 [0, 2] 範圍內
        """
        if not 0 <= v <= 2:
            raise ValueError("temperature must be within [0, 2]")
        return v

    @field_validator("max_tokens")
    @classmethod
    def validate_max_tokens(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_tokens must be greater than 0")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
        return json.dumps(error, ensure_ascii=False)
    return str(error)


class BaseProvider(ABC):
    """AI 提供商適配器抽象基類。"""

    key: str = ""
    display_name: str = ""
    api_label: str = ""
    expected_field: str = "content"

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        max_history: int = 10,
        max_response_length: int = 1000,
    ):
        """
        初始化適配器。

        Args:
            settings: 提供商配置
            max_history: 帶入請求的歷史對話上限（保留最新的）
            max_response_length: 回覆最大字元數
        """
        self.settings = settings
        self.max_history = max(0, int(max_history))
        self.max_response_length = max(1, int(max_response_length))

    @classmethod
    def from_config(cls, config: AssistantConfig) -> "BaseProvider":
        """
        從助手配置構建適配器。

        Raises:
            ConfigurationError: 配置值無效
        """
        raw = config.get_section("api_providers", cls.key, default={}) or {}
        try:
            settings = ProviderSettings.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid settings for provider '{cls.key}': {exc}") from exc
        return cls(
            settings,
            max_history=config.get_nested("prompts.max_conversation_history", 10),
            max_response_length=config.get_nested("advanced.max_response_length", 1000),
        )

    # ---- 描述 ----

    @property
    def name(self) -> str:
        return self.display_name

    @property
    def description(self) -> str:
        return f"{self.display_name} API provider using model: {self.settings.model}"

    @property
    def placeholder_key(self) -> str:
        return f"YOUR_{self.key.upper()}_API_KEY"

    def is_configured(self) -> bool:
        """金鑰存在且不是預設佔位值。"""
        api_key = self.settings.api_key
        return bool(api_key) and api_key != self.placeholder_key

    @property
    def label(self) -> str:
        return self.api_label or self.display_name

    @property
    def not_configured_message(self) -> str:
        return f"{self.display_name} is not properly configured. Please check your API key."

    # ---- 請求構建 ----

    def build_request(
        self,
        query: str,
        history: History,
        system_prompt: str,
        server_info: str = "",
        server_features: str = "",
    ) -> BuildResult:
        """
        構建 HTTP 請求（不做 I/O）。

        Args:
            query: 玩家查詢
            history: 歷史對話（{"query", "response"} 字典列表，舊的在前）
            system_prompt: 系統提示詞
            server_info: 伺服器資訊（可選）
            server_features: 相關伺服器功能（可選）

        Returns:
            BuildResult
        """
        if not self.is_configured():
            return BuildResult.failure(self.not_configured_message)
        try:
            spec = self._build(query, self.trim_history(history), self.compose_system_prompt(system_prompt, server_info, server_features))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("%s request build failed: %s", self.display_name, exc)
            return BuildResult.failure(f"{self.display_name} request build failed: {exc}")
        return BuildResult.ok(spec)

    @abstractmethod
    def _build(self, query: str, history: History, system_prompt: str) -> HttpRequestSpec:
        raise NotImplementedError

    def compose_system_prompt(self, system_prompt: str, server_info: str = "", server_features: str = "") -> str:
        full = system_prompt
        if server_info:
            full += "\n\nServer Information:\n" + server_info
        if server_features:
            full += "\n\n" + server_features
        return full

    def trim_history(self, history: Optional[History]) -> History:
        if not history or self.max_history == 0:
            return []
        return list(history)[-self.max_history :]

    def encode(self, payload: Dict[str, Any]) -> str:
        return json.dumps(payload, ensure_ascii=False)

    # ---- 回應解析 ----

    def parse_response(self, raw_body: Optional[str], result: Optional[HttpResult] = None) -> ParseResult:
        """
        解析原始回應（不做 I/O，不拋出異常）。

        Args:
            raw_body: 原始回應體
            result: 執行器結果（含 HTTP 層錯誤時直接判定失敗）

        Returns:
            ParseResult
        """
        if result is not None and result.error:
            return ParseResult.failure(f"{self.label} API error: {result.error}")
        if not raw_body or not raw_body.strip():
            return ParseResult.failure(f"Empty response from {self.label} API")
        try:
            data = json.loads(raw_body)
        except ValueError as exc:
            return ParseResult.failure(f"Invalid JSON response from {self.label}: {exc}")
        if not isinstance(data, dict):
            return ParseResult.failure(f"{self.label}: Unexpected response format - not a JSON object")

        try:
            text = self._extract(data)
        except (KeyError, IndexError, TypeError):
            text = None

        if not isinstance(text, str):
            if "error" in data:
                return ParseResult.failure(f"{self.label} error: {_error_message(data['error'])}")
            return ParseResult.failure(f"{self.label}: Unexpected response format - {self.expected_field} not found")
        return ParseResult.ok(self.finalize(text))

    @abstractmethod
    def _extract(self, data: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    def finalize(self, text: str) -> str:
        """截斷超長回覆；未含格式碼時轉換 Markdown。"""
        text = text.strip()
        if len(text) > self.max_response_length:
            text = text[: self.max_response_length] + "..."
        if ESCAPE not in text:
            text = format_text(text)
        return text
