# 代碼功能說明: 提供商註冊表單元測試
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""提供商註冊表單元測試"""

from __future__ import annotations

import pytest

from ai_assistant.llm.registry import ProviderRegistry, normalize_name

ENABLED = {
    "openai": {"enabled": True, "api_key": "sk-openai"},
    "anthropic": {"enabled": True, "api_key": "sk-ant"},
    "google": {"enabled": True, "api_key": "YOUR_GOOGLE_API_KEY"},
}


@pytest.fixture
def registry(make_config) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.load(make_config(ENABLED))
    return registry


class TestProviderRegistry:
    """測試 ProviderRegistry"""

    def test_only_enabled_providers_loaded(self, registry: ProviderRegistry):
        assert registry.list_names() == ["openai", "anthropic", "google"]
        assert len(registry) == 3

    @pytest.mark.parametrize(
        "alias,expected",
        [
            ("OpenAI", "openai"),
            ("open_ai", "openai"),
            ("Open-AI", "openai"),
            ("chatgpt", "openai"),
            ("CLAUDE", "anthropic"),
            ("Anthropic Claude", "anthropic"),
            ("anthropic_claude", "anthropic"),
            ("gemini", "google"),
            ("Google AI", "google"),
        ],
    )
    def test_alias_resolution(self, registry: ProviderRegistry, alias: str, expected: str):
        assert registry.resolve(alias) == expected
        assert registry.get(alias) is registry.get(expected)

    def test_unknown_or_disabled_not_resolved(self, registry: ProviderRegistry):
        assert registry.resolve("openrouter") is None
        assert registry.resolve("") is None
        assert not registry.is_available("local")

    def test_default_from_config(self, make_config):
        registry = ProviderRegistry()
        registry.load(make_config(dict(ENABLED, default_provider="Claude")))
        assert registry.default_name == "anthropic"

    def test_unknown_default_falls_back_to_first_loaded(self, make_config):
        registry = ProviderRegistry()
        registry.load(make_config(dict(ENABLED, default_provider="mistral")))
        assert registry.default_name == "openai"

    def test_configured_providers_excludes_placeholders(self, registry: ProviderRegistry):
        assert registry.configured_providers() == ["openai", "anthropic"]

    def test_set_default(self, registry: ProviderRegistry):
        assert registry.set_default("gemini") is True
        assert registry.default_name == "google"
        assert registry.set_default("nope") is False
        assert registry.default_name == "google"

    def test_invalid_settings_skipped(self, make_config):
        providers = dict(ENABLED, anthropic={"enabled": True, "api_key": "k", "max_tokens": 0})
        registry = ProviderRegistry()
        assert registry.load(make_config(providers)) == 2
        assert registry.resolve("claude") is None

    def test_nothing_enabled(self, make_config):
        registry = ProviderRegistry()
        assert registry.load(make_config()) == 0
        assert registry.default_name is None

    def test_normalize_name(self):
        assert normalize_name(" Open_Router ") == "openrouter"
