# 代碼功能說明: 提供商適配器模組初始化
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""提供商適配器模組：OpenAI / OpenRouter / Anthropic / Google / 本地模型。"""

from .anthropic import AnthropicProvider  # noqa: F401
from .base import BaseProvider, ProviderSettings  # noqa: F401
from .google import GoogleProvider  # noqa: F401
from .local import LocalProvider  # noqa: F401
from .openai import OpenAIProvider  # noqa: F401
from .openrouter import OpenRouterProvider  # noqa: F401

__all__ = [
    "BaseProvider",
    "ProviderSettings",
    "OpenAIProvider",
    "OpenRouterProvider",
    "AnthropicProvider",
    "GoogleProvider",
    "LocalProvider",
]
