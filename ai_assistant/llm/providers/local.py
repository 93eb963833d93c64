# 代碼功能說明: 本地補全伺服器適配器（單一拼接提示詞 + 停止序列）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""本地模型適配器，相容 /v1/completions 風格的端點。"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...models import HttpRequestSpec
from .base import BaseProvider, History

DEFAULT_LOCAL_ENDPOINT = "http://localhost:8080/v1/completions"
STOP_SEQUENCES = ["User:", "\nUser:"]


class LocalProvider(BaseProvider):
    """本地 AI 適配器。"""

    key = "local"
    display_name = "Local AI"
    expected_field = "choices[0].text"

    def is_configured(self) -> bool:
        """端點存在且不是預設的 localhost 佔位端點。"""
        endpoint = self.settings.endpoint
        return bool(endpoint) and endpoint != DEFAULT_LOCAL_ENDPOINT

    @property
    def not_configured_message(self) -> str:
        return "Local AI is not properly configured. Please check your endpoint."

    def build_prompt(self, query: str, history: History, system_prompt: str) -> str:
        prompt = system_prompt
        if history:
            prompt += "\n\nConversation History:"
            for entry in history:
                prompt += f"\nUser: {entry.get('query', '')}"
                prompt += f"\nAssistant: {entry.get('response', '')}"
        prompt += f"\n\nUser: {query}\nAssistant:"
        return prompt

    def _build(self, query: str, history: History, system_prompt: str) -> HttpRequestSpec:
        payload = {
            "prompt": self.build_prompt(query, history, system_prompt),
            "model": self.settings.model,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
            "stop": list(STOP_SEQUENCES),
        }
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return HttpRequestSpec(
            url=self.settings.endpoint,
            method="POST",
            headers=headers,
            body=self.encode(payload),
            timeout=self.settings.timeout,
        )

    def _extract(self, data: Dict[str, Any]) -> Optional[str]:
        return data["choices"][0]["text"]
