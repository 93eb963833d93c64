# 代碼功能說明: OpenAI Chat Completions 適配器
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""OpenAI 適配器：角色標記的消息陣列，首條為 system 消息。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...models import HttpRequestSpec
from .base import BaseProvider, History

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIProvider(BaseProvider):
    """OpenAI 適配器。"""

    key = "openai"
    display_name = "OpenAI"
    expected_field = "choices[0].message.content"
    url = OPENAI_URL

    def build_messages(self, query: str, history: History, system_prompt: str) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        for entry in history:
            messages.append({"role": "user", "content": str(entry.get("query", ""))})
            messages.append({"role": "assistant", "content": str(entry.get("response", ""))})
        messages.append({"role": "user", "content": query})
        return messages

    def build_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }

    def _build(self, query: str, history: History, system_prompt: str) -> HttpRequestSpec:
        payload = {
            "model": self.settings.model,
            "messages": self.build_messages(query, history, system_prompt),
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }
        return HttpRequestSpec(
            url=self.url,
            method="POST",
            headers=self.build_headers(),
            body=self.encode(payload),
            timeout=self.settings.timeout,
        )

    def _extract(self, data: Dict[str, Any]) -> Optional[str]:
        return data["choices"][0]["message"]["content"]
