# 代碼功能說明: 憑證遮罩工具單元測試
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""憑證遮罩工具單元測試"""

from __future__ import annotations

from ai_assistant.http.masking import (
    REDACTED,
    collect_secrets,
    iter_header_pairs,
    mask_headers,
    mask_url,
    redact,
)
from ai_assistant.logging_config import mask_sensitive_values


class TestMasking:
    """測試遮罩函數"""

    def test_iter_header_pairs_accepts_lines_and_dicts(self):
        assert iter_header_pairs(["X-A: 1", "bad line", "X-B:2"]) == [("X-A", "1"), ("X-B", "2")]
        assert iter_header_pairs({"X-A": " 1 "}) == [("X-A", "1")]

    def test_mask_headers_keeps_scheme(self):
        masked = mask_headers({"Authorization": "Bearer sk-123456", "X-API-Key": "abc12345", "Accept": "*/*"})
        assert masked == [
            f"Authorization: Bearer {REDACTED}",
            f"X-API-Key: {REDACTED}",
            "Accept: */*",
        ]

    def test_mask_url(self):
        url = "https://host/v1/models/x:generateContent?key=AIzaSECRET&alt=json"
        assert mask_url(url) == f"https://host/v1/models/x:generateContent?key={REDACTED}&alt=json"

    def test_collect_and_redact(self):
        secrets = collect_secrets({"Authorization": "Bearer sk-123456"}, "https://h/?key=AIzaSECRET")
        text = "auth was Bearer sk-123456, token sk-123456, url key AIzaSECRET"
        redacted = redact(text, secrets)
        assert "sk-123456" not in redacted
        assert "AIzaSECRET" not in redacted

    def test_redact_ignores_very_short_values(self):
        assert redact("abc", ["ab"]) == "abc"

    def test_structlog_processor_masks_fields(self):
        event = mask_sensitive_values(
            None,
            "info",
            {"event": "x", "api_key": "sk-1", "headers": {"Authorization": "Bearer sk-1"}},
        )
        assert event["api_key"] == REDACTED
        assert event["headers"] == [f"Authorization: Bearer {REDACTED}"]
