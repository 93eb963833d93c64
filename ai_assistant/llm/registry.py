# 代碼功能說明: AI 提供商註冊表（載入、預設選擇、別名解析）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""AI 提供商註冊表。

只持有配置與查找邏輯，不持有任何請求狀態。名稱解析不區分大小寫，並忽略 `-` `_` 與空白。
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Type

import structlog

from ..config import AssistantConfig
from .providers import (
    AnthropicProvider,
    BaseProvider,
    GoogleProvider,
    LocalProvider,
    OpenAIProvider,
    OpenRouterProvider,
)

logger = structlog.get_logger(__name__)

# 載入順序即故障轉移時的遍歷順序
PROVIDER_CLASSES: Dict[str, Type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
    "local": LocalProvider,
}

EXTRA_ALIASES: Dict[str, List[str]] = {
    "openai": ["gpt", "chatgpt"],
    "anthropic": ["claude"],
    "google": ["gemini"],
    "local": ["localai"],
}

_NORMALIZE_PATTERN = re.compile(r"[\s_\-]+")


def normalize_name(name: str) -> str:
    """小寫並移除空白 / 底線 / 連字號。"""
    return _NORMALIZE_PATTERN.sub("", (name or "").strip().lower())


class ProviderRegistry:
    """AI 提供商註冊表。"""

    def __init__(self, provider_classes: Optional[Dict[str, Type[BaseProvider]]] = None):
        self._provider_classes = dict(provider_classes or PROVIDER_CLASSES)
        self._providers: Dict[str, BaseProvider] = {}
        self._aliases: Dict[str, str] = {}
        self._default: Optional[str] = None

    def load(self, config: AssistantConfig) -> int:
        """
        從配置（重新）構建提供商集合。

        Args:
            config: 助手配置

        Returns:
            載入的提供商數量
        """
        self._providers.clear()
        self._aliases.clear()
        self._default = None

        for key, provider_cls in self._provider_classes.items():
            if not config.get_nested(f"api_providers.{key}.enabled", False):
                continue
            try:
                provider = provider_cls.from_config(config)
            except Exception as exc:
                logger.error("Failed to initialize provider", provider=key, error=str(exc))
                continue
            self.register(key, provider)
            logger.debug("Provider initialized", provider=key, configured=provider.is_configured())

        if not self._providers:
            logger.warning("No AI providers are enabled, fallback responses will be used")
            return 0

        configured_default = str(config.get_nested("api_providers.default_provider", "openai"))
        resolved = self.resolve(configured_default)
        if resolved is None:
            resolved = next(iter(self._providers))
            logger.warning(
                "Default provider not available, using first loaded provider",
                configured=configured_default,
                using=resolved,
                available=self.list_names(),
            )
        else:
            logger.info("Using default AI provider", provider=resolved)
        self._default = resolved

        if not self._providers[resolved].is_configured():
            logger.warning("Default provider is not properly configured", provider=resolved)
        return len(self._providers)

    def register(self, name: str, provider: BaseProvider, aliases: Iterable[str] = ()) -> None:
        """註冊提供商並建立別名；第一個註冊的提供商成為預設值。"""
        canonical = normalize_name(name)
        self._providers[canonical] = provider
        names = [canonical, provider.display_name, *EXTRA_ALIASES.get(canonical, []), *aliases]
        for alias in names:
            normalized = normalize_name(alias)
            if normalized:
                self._aliases.setdefault(normalized, canonical)
        if self._default is None:
            self._default = canonical

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """解析為正式名稱；無法解析時返回 None。"""
        if not name:
            return None
        canonical = self._aliases.get(normalize_name(name))
        if canonical is None or canonical not in self._providers:
            return None
        return canonical

    def is_available(self, name: Optional[str]) -> bool:
        return self.resolve(name) is not None

    def set_default(self, name: str) -> bool:
        canonical = self.resolve(name)
        if canonical is None:
            return False
        self._default = canonical
        logger.info("Default provider changed", provider=canonical)
        return True

    def get(self, name: Optional[str]) -> Optional[BaseProvider]:
        canonical = self.resolve(name)
        return self._providers.get(canonical) if canonical else None

    def list_names(self) -> List[str]:
        return list(self._providers.keys())

    @property
    def default_name(self) -> Optional[str]:
        return self._default

    def configured_providers(self) -> List[str]:
        """已配置（有有效憑證）的提供商，依註冊順序。"""
        return [name for name, provider in self._providers.items() if provider.is_configured()]

    def __len__(self) -> int:
        return len(self._providers)
