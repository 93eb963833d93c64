# 代碼功能說明: OpenRouter 適配器（OpenAI 相容格式 + 來源標頭）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""OpenRouter 適配器。"""

from __future__ import annotations

from typing import Dict

from .openai import OpenAIProvider

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_REFERER = "https://github.com/pmmp-ai-assistant"
DEFAULT_TITLE = "PocketMine AI Assistant"


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter 適配器，與 OpenAI 相同的請求結構，另帶 HTTP-Referer / X-Title。"""

    key = "openrouter"
    display_name = "OpenRouter"
    url = OPENROUTER_URL

    def build_headers(self) -> Dict[str, str]:
        headers = super().build_headers()
        headers["HTTP-Referer"] = self.settings.referer or DEFAULT_REFERER
        headers["X-Title"] = self.settings.title or DEFAULT_TITLE
        return headers
