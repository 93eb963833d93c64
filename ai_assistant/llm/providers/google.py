# 代碼功能說明: Google Gemini generateContent 適配器
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""Google 適配器：systemInstruction 物件 + 僅含 user / model 角色的 contents 陣列。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ...models import HttpRequestSpec
from .base import BaseProvider, History

GOOGLE_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent?key={key}"
TOP_P = 0.95
TOP_K = 40


def _parts(text: str) -> List[Dict[str, str]]:
    return [{"text": text}]


class GoogleProvider(BaseProvider):
    """Google AI（Gemini）適配器。"""

    key = "google"
    display_name = "Google AI"
    expected_field = "candidates[0].content.parts[0].text"

    def _build(self, query: str, history: History, system_prompt: str) -> HttpRequestSpec:
        contents: List[Dict[str, Any]] = []
        for entry in history:
            contents.append({"role": "user", "parts": _parts(str(entry.get("query", "")))})
            contents.append({"role": "model", "parts": _parts(str(entry.get("response", "")))})
        contents.append({"role": "user", "parts": _parts(query)})

        payload = {
            "systemInstruction": {"parts": _parts(system_prompt)},
            "contents": contents,
            "generationConfig": {
                "temperature": self.settings.temperature,
                "maxOutputTokens": self.settings.max_tokens,
                "topP": TOP_P,
                "topK": TOP_K,
            },
        }
        url = GOOGLE_URL_TEMPLATE.format(
            model=quote(self.settings.model, safe="-._"),
            key=quote(self.settings.api_key, safe=""),
        )
        return HttpRequestSpec(
            url=url,
            method="POST",
            headers={"Content-Type": "application/json"},
            body=self.encode(payload),
            timeout=self.settings.timeout,
        )

    def _extract(self, data: Dict[str, Any]) -> Optional[str]:
        return data["candidates"][0]["content"]["parts"][0]["text"]
