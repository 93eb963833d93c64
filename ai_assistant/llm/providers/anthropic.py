# 代碼功能說明: Anthropic Messages API 適配器
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""Anthropic 適配器：system 與消息陣列分離，陣列內不得出現 system 角色。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...models import HttpRequestSpec
from .base import BaseProvider, History

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


def _text_block(text: str) -> List[Dict[str, str]]:
    return [{"type": "text", "text": text}]


class AnthropicProvider(BaseProvider):
    """Anthropic Claude 適配器。"""

    key = "anthropic"
    display_name = "Anthropic Claude"
    api_label = "Anthropic"
    expected_field = "content[0].text"

    def _build(self, query: str, history: History, system_prompt: str) -> HttpRequestSpec:
        messages: List[Dict[str, Any]] = []
        for entry in history:
            messages.append({"role": "user", "content": _text_block(str(entry.get("query", "")))})
            messages.append({"role": "assistant", "content": _text_block(str(entry.get("response", "")))})
        messages.append({"role": "user", "content": _text_block(query)})

        payload = {
            "model": self.settings.model,
            "system": system_prompt,
            "messages": messages,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }
        return HttpRequestSpec(
            url=ANTHROPIC_URL,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "X-API-Key": self.settings.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            body=self.encode(payload),
            timeout=self.settings.timeout,
        )

    def _extract(self, data: Dict[str, Any]) -> Optional[str]:
        return data["content"][0]["text"]
