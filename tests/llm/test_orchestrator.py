# 代碼功能說明: 查詢編排器測試（快取、故障轉移、取消、離線回覆、表單路由）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""查詢編排器測試

通過 AssistantRuntime 裝配完整組件，以 httpx.MockTransport 模擬各提供商。
"""

from __future__ import annotations

import json

import httpx
import pytest
from structlog.testing import capture_logs

from ai_assistant.llm.fallback import CRAFTING_FALLBACK
from ai_assistant.llm.orchestrator import (
    ALL_FAILED_MESSAGE,
    CANCELLED_LABEL,
    PROCESSING_MESSAGE,
    RATE_LIMITED_MESSAGE,
)
from ai_assistant.models import SYSTEM_OWNER, BuildResult, FormKind
from ai_assistant.runtime import AssistantRuntime

OPENAI_HOST = "api.openai.com"
ANTHROPIC_HOST = "api.anthropic.com"
GOOGLE_HOST = "generativelanguage.googleapis.com"

PROVIDERS = {
    "default_provider": "openai",
    "openai": {"enabled": True, "api_key": "sk-openai-test"},
    "anthropic": {"enabled": True, "api_key": "sk-ant-test"},
    # 已啟用但仍是佔位金鑰：不在故障轉移列表中
    "google": {"enabled": True, "api_key": "YOUR_GOOGLE_API_KEY"},
}


def anthropic_payload(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}


def _echo_openai(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"choices": [{"message": {"content": f"answer: {body['messages'][-1]['content']}"}}]})


@pytest.fixture
def build(make_config, renderer, scheduler, ai_server):
    """構建使用模擬傳輸層的運行時。"""

    def _build(providers=None, **sections) -> AssistantRuntime:
        config = make_config(PROVIDERS if providers is None else providers, **sections)
        return AssistantRuntime(config, renderer, scheduler=scheduler, transport=ai_server.transport)

    return _build


class TestSynchronousPaths:
    """測試同步返回的路徑"""

    @pytest.mark.asyncio
    async def test_cache_hit_returns_immediately(self, build, ai_server, renderer):
        """相同查詢第二次直接返回快取，不發出 HTTP 請求"""
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        assert runtime.ask("Steve", "How to craft a bed?") == PROCESSING_MESSAGE
        await runtime.executor.drain()
        assert renderer.direct == [("Steve", "How to craft a bed?", "§fanswer: How to craft a bed?")]

        again = runtime.ask("Alex", "  how to CRAFT a bed?")
        assert again == "§fanswer: How to craft a bed?"
        assert len(ai_server.hits(OPENAI_HOST)) == 1
        assert runtime.ledger.get_form_context("Alex") is None
        assert not runtime.ledger.has_active("Alex")

    @pytest.mark.asyncio
    async def test_bypass_cache(self, build, ai_server):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()
        runtime.ask("Steve", "q")
        await runtime.executor.drain()
        assert runtime.ask("Steve", "q", bypass_cache=True) == PROCESSING_MESSAGE
        await runtime.executor.drain()
        assert len(ai_server.hits(OPENAI_HOST)) == 2

    @pytest.mark.asyncio
    async def test_rate_limited(self, build, ai_server):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build(advanced={"rate_limit": {"enabled": True, "max_requests": 1, "time_window": 60}})
        assert runtime.ask("Steve", "first") == PROCESSING_MESSAGE
        assert runtime.ask("Steve", "second") == RATE_LIMITED_MESSAGE
        assert not runtime.ledger.has_active("Steve")
        await runtime.executor.drain()
        assert len(ai_server.hits(OPENAI_HOST)) == 1

    def test_no_configured_provider_uses_fallback(self, build):
        runtime = build({"openai": {"enabled": True, "api_key": "YOUR_OPENAI_API_KEY"}})
        text = runtime.ask("Steve", "what is the server tps")
        assert "Server Statistics" in text
        assert not runtime.ledger.has_active("Steve")

    def test_crafting_fallback_without_network(self, build, ai_server):
        runtime = build({})
        assert runtime.ask("Steve", "how to craft a sword") == CRAFTING_FALLBACK
        assert ai_server.requests == []

    @pytest.mark.asyncio
    async def test_every_build_failure_returns_all_failed(self, build, ai_server, monkeypatch):
        runtime = build()
        for name in ("openai", "anthropic"):
            monkeypatch.setattr(runtime.registry.get(name), "build_request", lambda *a, **k: BuildResult.failure("boom"))

        assert runtime.ask("Steve", "q", form_kind=FormKind.CHAT) == ALL_FAILED_MESSAGE
        assert runtime.ledger.get_form_context("Steve") is None
        assert not runtime.ledger.has_active("Steve")
        assert ai_server.requests == []


class TestFailover:
    """測試提供商故障轉移"""

    @pytest.mark.asyncio
    async def test_fails_over_to_next_configured_provider(self, build, ai_server, renderer):
        """A 失敗後轉向 B，跳過未配置的 C，並標示切換"""
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(401, json={"error": {"message": "bad key"}}))
        ai_server.json_route(ANTHROPIC_HOST, anthropic_payload("from claude"))
        runtime = build()

        runtime.ask("Steve", "hello")
        await runtime.executor.drain()

        assert len(ai_server.hits(OPENAI_HOST)) == 1
        assert len(ai_server.hits(ANTHROPIC_HOST)) == 1
        assert ai_server.hits(GOOGLE_HOST) == []
        owner, question, answer = renderer.direct[0]
        assert (owner, question) == ("Steve", "hello")
        assert "Switched to Anthropic Claude because OpenAI was unavailable" in answer
        assert answer.endswith("§ffrom claude")
        assert not runtime.ledger.has_active("Steve")

    @pytest.mark.asyncio
    async def test_malformed_json_fails_over_silently(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(200, text="{\"choices\": ["))
        ai_server.json_route(ANTHROPIC_HOST, anthropic_payload("Combine sticks and a diamond"))
        runtime = build(advanced={"failover_notice": False})

        runtime.ask("Steve", "How do I craft a diamond sword?")
        await runtime.executor.drain()

        assert renderer.direct == [("Steve", "How do I craft a diamond sword?", "§fCombine sticks and a diamond")]
        assert runtime.cache.get("how do i craft a diamond sword?") == "§fCombine sticks and a diamond"

    @pytest.mark.asyncio
    async def test_requested_provider_tried_first(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, _echo_openai)
        ai_server.json_route(ANTHROPIC_HOST, anthropic_payload("claude here"))
        runtime = build()

        runtime.ask("Steve", "hi", provider="Claude")
        await runtime.executor.drain()

        assert ai_server.hits(OPENAI_HOST) == []
        assert renderer.direct[0][2] == "§fclaude here"

    @pytest.mark.asyncio
    async def test_unknown_provider_uses_default(self, build, ai_server, renderer):
        """無法解析的提供商名稱改用預設提供商，且不觸發故障轉移"""
        ai_server.route(OPENAI_HOST, _echo_openai)
        ai_server.json_route(ANTHROPIC_HOST, anthropic_payload("claude here"))
        runtime = build()

        assert runtime.ask("Steve", "q", provider="not-a-provider") == PROCESSING_MESSAGE
        await runtime.executor.drain()

        assert len(ai_server.hits(OPENAI_HOST)) == 1
        assert ai_server.hits(ANTHROPIC_HOST) == []
        assert renderer.direct == [("Steve", "q", "§fanswer: q")]

    @pytest.mark.asyncio
    async def test_all_providers_failed(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(400, text="bad request"))
        ai_server.route(ANTHROPIC_HOST, lambda r: httpx.Response(200, text="not json"))
        runtime = build()

        runtime.ask("Steve", "hello")
        await runtime.executor.drain()

        assert renderer.direct == [("Steve", "hello", ALL_FAILED_MESSAGE)]
        assert runtime.ledger.stats()["pending"] == 0
        assert not runtime.ledger.has_active("Steve")

    @pytest.mark.asyncio
    async def test_failover_notice_can_be_disabled(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(404, text="gone"))
        ai_server.json_route(ANTHROPIC_HOST, anthropic_payload("plain"))
        runtime = build(advanced={"failover_notice": False})
        runtime.ask("Steve", "hello")
        await runtime.executor.drain()
        assert renderer.direct[0][2] == "§fplain"


class TestCancellation:
    """測試取消後的遲到回覆"""

    @pytest.mark.asyncio
    async def test_cancelled_success_is_labelled(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        runtime.ask("Steve", "slow question")
        assert runtime.cancel("Steve") is True
        await runtime.executor.drain()

        assert renderer.direct == [("Steve", "slow question", CANCELLED_LABEL + "§fanswer: slow question")]
        assert renderer.forms == []

    @pytest.mark.asyncio
    async def test_new_request_keeps_its_form_context(self, build, ai_server, renderer):
        """舊請求被新請求取代時，舊回覆直接送達，新回覆仍按表單路由"""
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        runtime.ask("Steve", "old", form_kind=FormKind.CHAT)
        runtime.ask("Steve", "new", form_kind=FormKind.CHAT)
        await runtime.executor.drain()

        assert renderer.direct == [("Steve", "old", CANCELLED_LABEL + "§fanswer: old")]
        assert renderer.forms == [("Steve", FormKind.CHAT, "new", "§fanswer: new")]

    @pytest.mark.asyncio
    async def test_cancelled_failure_is_dropped(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(401, text="denied"))
        ai_server.json_route(ANTHROPIC_HOST, anthropic_payload("unused"))
        runtime = build()

        runtime.ask("Steve", "q")
        runtime.cancel("Steve")
        await runtime.executor.drain()

        assert renderer.direct == []
        assert ai_server.hits(ANTHROPIC_HOST) == []
        assert runtime.ledger.stats()["pending"] == 0


class TestRouting:
    """測試回覆路由"""

    @pytest.mark.asyncio
    async def test_offline_owner_gets_ready_response(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        runtime.ask("Steve", "q", form_kind=FormKind.CRAFTING)
        renderer.offline.add("Steve")
        await runtime.executor.drain()

        assert renderer.direct == [] and renderer.forms == []
        ready = runtime.consume_ready_response("Steve")
        assert ready.question == "q"
        assert ready.response == "§fanswer: q"
        assert runtime.consume_ready_response("Steve") is None

    @pytest.mark.asyncio
    async def test_form_context_routes_to_form_and_is_cleared(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        runtime.ask("Steve", "diamond pickaxe", form_kind=FormKind.CRAFTING)
        await runtime.executor.drain()

        assert renderer.forms == [("Steve", FormKind.CRAFTING, "diamond pickaxe", "§fanswer: diamond pickaxe")]
        assert runtime.ledger.get_form_context("Steve") is None
        assert runtime.ledger.has_ready_response("Steve")

    @pytest.mark.asyncio
    async def test_renderer_failure_parks_response(self, build, ai_server, renderer, monkeypatch):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        def explode(*args):
            raise RuntimeError("form closed")

        monkeypatch.setattr(renderer, "render_direct", explode)
        runtime.ask("Steve", "q")
        await runtime.executor.drain()
        assert runtime.consume_ready_response("Steve").response == "§fanswer: q"

    @pytest.mark.asyncio
    async def test_system_query(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        assert runtime.ask(None, "status report") == PROCESSING_MESSAGE
        await runtime.executor.drain()
        assert renderer.direct == [(SYSTEM_OWNER, "status report", "§fanswer: status report")]
        assert runtime.conversations.get(SYSTEM_OWNER) == []


class TestPromptContext:
    """測試請求內容"""

    @pytest.mark.asyncio
    async def test_history_sent_with_next_request(self, build, ai_server):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build()

        runtime.ask("Steve", "first")
        await runtime.executor.drain()
        runtime.ask("Steve", "second")
        await runtime.executor.drain()

        messages = ai_server.body(ai_server.hits(OPENAI_HOST)[-1])["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[1]["content"] == "first"
        assert messages[2]["content"] == "§fanswer: first"

    @pytest.mark.asyncio
    async def test_system_prompt_includes_server_context(self, build, ai_server):
        ai_server.route(OPENAI_HOST, _echo_openai)
        runtime = build(
            prompts={"include_server_info": True, "include_server_features": True, "custom_system_prompt": "You are Sky helper."},
            server={"name": "SkyBlock"},
            server_features={"economy": {"shop": {"description": "Buy items", "command": "/shop"}}},
        )

        runtime.ask("Steve", "where is the shop")
        await runtime.executor.drain()

        system = ai_server.body(ai_server.hits(OPENAI_HOST)[0])["messages"][0]["content"]
        assert system.startswith("You are Sky helper.")
        assert "Minecraft color and formatting codes" in system
        assert "Server Name: SkyBlock" in system
        assert "Asking Player: Steve" in system
        assert "RELEVANT SERVER FEATURES:" in system

    @pytest.mark.asyncio
    async def test_api_key_never_reaches_player(self, build, ai_server, renderer):
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(401, text=f"bad token {r.headers['Authorization']}"))
        ai_server.route(ANTHROPIC_HOST, lambda r: httpx.Response(401, text=f"bad key {r.headers['X-API-Key']}"))
        runtime = build()

        runtime.ask("Steve", "q")
        await runtime.executor.drain()

        shown = " ".join(answer for _, _, answer in renderer.direct)
        assert "sk-openai-test" not in shown
        assert "sk-ant-test" not in shown

    @pytest.mark.asyncio
    async def test_echoed_key_in_unparseable_body_is_masked_in_logs(self, build, ai_server, renderer):
        """無法解析的 200 回應回顯金鑰時，失敗日誌中的回應內容與錯誤都已遮罩"""
        ai_server.route(OPENAI_HOST, lambda r: httpx.Response(200, text=f"oops {r.headers['Authorization']}"))
        ai_server.route(ANTHROPIC_HOST, lambda r: httpx.Response(200, text=f"not json {r.headers['X-API-Key']}"))
        runtime = build()

        with capture_logs() as logs:
            runtime.ask("Steve", "q")
            await runtime.executor.drain()

        failures = [e for e in logs if e["event"] == "Provider attempt failed"]
        assert [e["provider"] for e in failures] == ["openai", "anthropic"]
        assert "<REDACTED>" in failures[0]["raw_body"]
        leaked = [e for e in logs if "sk-openai-test" in repr(e) or "sk-ant-test" in repr(e)]
        assert leaked == []
        assert renderer.direct == [("Steve", "q", ALL_FAILED_MESSAGE)]
