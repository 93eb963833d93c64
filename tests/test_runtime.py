# 代碼功能說明: AI 助手運行時測試（生命週期、玩家事件、提供商管理）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""AI 助手運行時測試"""

from __future__ import annotations

import json
import time

import httpx
import pytest

from ai_assistant.config import AssistantConfig
from ai_assistant.models import FormContext, FormKind
from ai_assistant.runtime import AssistantRuntime
from ai_assistant.utils.response_cache import cache_key

PROVIDERS = {
    "default_provider": "openai",
    "openai": {"enabled": True, "api_key": "sk-openai-test"},
    "anthropic": {"enabled": True, "api_key": "sk-ant-test"},
}


@pytest.fixture
def runtime(make_config, renderer, scheduler, ai_server, tmp_path) -> AssistantRuntime:
    ai_server.json_route("api.openai.com", {"choices": [{"message": {"content": "hi"}}]})
    return AssistantRuntime(
        make_config(PROVIDERS),
        renderer,
        scheduler=scheduler,
        data_dir=tmp_path,
        transport=ai_server.transport,
    )


class TestLifecycle:
    """測試啟動與關閉"""

    def test_start_schedules_maintenance(self, runtime, scheduler):
        runtime.start()
        assert [interval for interval, _ in scheduler.repeating] == [60.0, 300.0, 60.0]
        runtime.start()
        assert len(scheduler.repeating) == 3

    def test_start_loads_persisted_cache(self, make_config, renderer, scheduler, tmp_path):
        entry = {"query": "bed", "response": "wool", "expires": time.time() + 100}
        (tmp_path / "response_cache.json").write_text(json.dumps({cache_key("bed"): entry}), encoding="utf-8")
        runtime = AssistantRuntime(make_config(PROVIDERS), renderer, scheduler=scheduler, data_dir=tmp_path)
        runtime.start()
        assert runtime.ask("Steve", "bed") == "wool"

    @pytest.mark.asyncio
    async def test_stop_drains_and_persists(self, runtime, renderer, tmp_path):
        runtime.start()
        runtime.ask("Steve", "hello")
        await runtime.stop()
        assert renderer.direct == [("Steve", "hello", "§fhi")]
        assert (tmp_path / "response_cache.json").exists()
        steve_dir = tmp_path / "history" / "steve"
        assert (steve_dir / "sessions.json").exists()
        assert len(list(steve_dir.glob("*.json"))) == 2
        assert runtime.executor.pending_count == 0

    @pytest.mark.asyncio
    async def test_stop_waits_for_scheduled_retry(self, runtime, renderer, ai_server, scheduler):
        """關閉時已排程的重試仍會完成並送達，不留下待處理請求"""
        replies = iter([
            httpx.Response(503, text="busy"),
            httpx.Response(200, json={"choices": [{"message": {"content": "hi"}}]}),
        ])
        ai_server.route("api.openai.com", lambda request: next(replies))

        runtime.ask("Steve", "hello")
        await runtime.stop()

        assert scheduler.delays == [2.0]
        assert renderer.direct == [("Steve", "hello", "§fhi")]
        assert runtime.ledger.stats()["pending"] == 0
        assert not runtime.ledger.has_active("Steve")
        assert runtime.executor.pending_count == 0

    def test_cleanup_requests(self, runtime):
        runtime.ledger.track("Steve", "r1", "q")
        runtime.ledger.cancel("Steve")
        assert runtime.cleanup_requests() == 0
        runtime.config.set_nested("advanced.cancelled_request_retention", -1)
        assert runtime.cleanup_requests() == 1


class TestPlayerEvents:
    """測試玩家事件"""

    @pytest.mark.asyncio
    async def test_ask_cancels_previous_request(self, runtime):
        runtime.ask("Steve", "first")
        first_id = runtime.ledger.get_active("Steve").id
        runtime.ask("Steve", "second")
        assert runtime.ledger.is_cancelled(first_id)
        assert runtime.ledger.get_active("Steve").query == "second"
        await runtime.executor.drain()

    @pytest.mark.asyncio
    async def test_ask_records_form_kind(self, runtime):
        runtime.ask("Steve", "q", form_kind=FormKind.BUILDING_CALCULATOR)
        assert runtime.ledger.get_form_context("Steve").kind == FormKind.BUILDING_CALCULATOR
        await runtime.executor.drain()

    def test_cancel_without_request(self, runtime):
        assert runtime.cancel("Nobody") is False

    def test_player_quit(self, runtime):
        runtime.ledger.track("Steve", "r1", "q")
        runtime.ledger.set_form_context("Steve", FormContext(kind=FormKind.CHAT))
        runtime.on_player_quit("Steve")
        assert not runtime.ledger.has_active("Steve")
        assert runtime.ledger.is_cancelled("r1")
        assert runtime.ledger.get_form_context("Steve") is None


class TestProviderManagement:
    """測試提供商管理操作"""

    def test_set_default_provider_persists(self, renderer, scheduler, tmp_path):
        path = tmp_path / "config.yml"
        config = AssistantConfig({"api_providers": PROVIDERS}, path=path, use_env=False)
        runtime = AssistantRuntime(config, renderer, scheduler=scheduler)

        assert runtime.set_default_provider("claude") is True
        assert runtime.registry.default_name == "anthropic"
        assert AssistantConfig.load(path, use_env=False).get_nested("api_providers.default_provider") == "anthropic"

    def test_set_unknown_default_provider(self, runtime):
        assert runtime.set_default_provider("mistral") is False
        assert runtime.registry.default_name == "openai"

    def test_reload_providers(self, runtime):
        runtime.config.set_nested("api_providers.google", {"enabled": True, "api_key": "AIza-test"})
        assert runtime.reload_providers() == 3
        assert runtime.registry.resolve("gemini") == "google"

