# 代碼功能說明: AI 助手運行時（組件裝配、週期維護任務、玩家生命週期事件）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""AI 助手運行時。

裝配配置、調度器、HTTP 執行器、請求台帳、快取、註冊表、限流器、對話存儲與編排器，
並負責週期維護（取消記錄清理、快取持久化、限流窗口清理）。
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

import httpx
import structlog

from .config import AssistantConfig
from .http.executor import HttpRequestExecutor
from .llm.orchestrator import QueryOrchestrator
from .llm.registry import ProviderRegistry
from .logging_config import configure_logging
from .models import FormContext, FormKind, ReadyResponse, Renderer
from .scheduler import AsyncioScheduler, Handle, Scheduler
from .storage.conversation_store import ConversationStore
from .utils.rate_limiter import RateLimiter
from .utils.request_ledger import RequestLedger
from .utils.response_cache import CACHE_FILENAME, ResponseCache
from .utils.server_context import ConfigServerContext, ServerContext, StatsProvider

logger = structlog.get_logger(__name__)


class AssistantRuntime:
    """AI 助手運行時。"""

    def __init__(
        self,
        config: AssistantConfig,
        renderer: Renderer,
        *,
        scheduler: Optional[Scheduler] = None,
        data_dir: Optional[Union[str, Path]] = None,
        server_context: Optional[ServerContext] = None,
        stats_provider: Optional[StatsProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        configure_logs: bool = False,
    ):
        """
        初始化運行時。

        Args:
            config: 助手配置
            renderer: 呼叫端渲染器
            scheduler: 調度器（可選，默認使用 AsyncioScheduler）
            data_dir: 數據目錄（快取與對話歷史；None 表示僅記憶體）
            server_context: 伺服器上下文（可選，默認從配置構建）
            stats_provider: 即時統計回調（僅在使用默認伺服器上下文時生效）
            transport: httpx 傳輸層（測試時注入）
            configure_logs: 是否依 advanced.debug 配置 structlog
        """
        if configure_logs:
            configure_logging(bool(config.get_nested("advanced.debug", False)))

        self.config = config
        self.renderer = renderer
        self.scheduler = scheduler or AsyncioScheduler()
        self.data_dir = Path(data_dir) if data_dir else None

        http_cfg = config.get_section("advanced", "http", default={}) or {}
        self.executor = HttpRequestExecutor(
            self.scheduler,
            max_retries=int(http_cfg.get("max_retries", 2)),
            connect_timeout=float(http_cfg.get("connect_timeout", 10)),
            prefer_ipv4=bool(http_cfg.get("prefer_ipv4", True)),
            keepalive_expiry=float(http_cfg.get("keepalive_expiry", 30)),
            ca_path=config.get_nested("advanced.cainfo_path", "") or "",
            transport=transport,
        )
        self.ledger = RequestLedger()
        self.cache = ResponseCache(
            ttl=config.get_nested("advanced.cache_duration", 3600),
            path=self.data_dir / CACHE_FILENAME if self.data_dir else None,
        )
        self.rate_limiter = RateLimiter(
            max_requests=config.get_nested("advanced.rate_limit.max_requests", 10),
            time_window=config.get_nested("advanced.rate_limit.time_window", 60),
            enabled=config.get_nested("advanced.rate_limit.enabled", True),
        )
        self.conversations = ConversationStore(
            self.data_dir,
            max_history=config.get_nested("prompts.max_conversation_history", 10),
            max_messages=config.get_nested("history.max_messages_per_session", 50),
            max_sessions=config.get_nested("history.max_sessions", 10),
        )
        self.registry = ProviderRegistry()
        self.server_context = server_context or ConfigServerContext(config, stats_provider)
        self.orchestrator = QueryOrchestrator(
            config,
            self.registry,
            self.executor,
            self.ledger,
            self.cache,
            self.rate_limiter,
            self.conversations,
            renderer,
            self.server_context,
        )
        self._timers: List[Handle] = []
        self.registry.load(config)

    # ---- 生命週期 ----

    def start(self) -> None:
        """載入持久化快取並排程週期維護任務。"""
        if self._timers:
            return
        self.cache.load()
        cleanup_interval = float(self.config.get_nested("advanced.request_cleanup_interval", 60))
        cache_interval = float(self.config.get_nested("advanced.cache_save_interval", 300))
        self._timers = [
            self.scheduler.run_every(cleanup_interval, self.cleanup_requests),
            self.scheduler.run_every(cache_interval, self.save_cache),
            self.scheduler.run_every(self.rate_limiter.time_window, self.rate_limiter.prune_expired),
        ]
        logger.info(
            "AI assistant runtime started",
            providers=self.registry.list_names(),
            default_provider=self.registry.default_name,
        )

    async def stop(self) -> None:
        """取消週期任務、等待進行中的請求並保存狀態。"""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        await self.executor.drain()
        self.save_cache()
        self.conversations.save_all()
        logger.info("AI assistant runtime stopped", ledger=self.ledger.stats())

    def cleanup_requests(self) -> int:
        retention = float(self.config.get_nested("advanced.cancelled_request_retention", 3600))
        return self.ledger.cleanup_expired(retention)

    def save_cache(self) -> None:
        self.cache.purge_expired()
        self.cache.save()

    # ---- 玩家操作 ----

    def ask(
        self,
        owner: Optional[str],
        query: str,
        provider: Optional[str] = None,
        form_kind: Optional[FormKind] = None,
        bypass_cache: bool = False,
    ) -> str:
        """
        玩家提問入口：取消舊請求、記錄發起介面、交給編排器。

        Args:
            owner: 玩家名（None 表示系統查詢）
            query: 查詢文字
            provider: 指定提供商（可選）
            form_kind: 發起介面（默認為直接指令）
            bypass_cache: 是否跳過快取

        Returns:
            即時文字結果
        """
        if owner is not None:
            self.ledger.cancel(owner)
            self.ledger.set_form_context(owner, FormContext(kind=form_kind or FormKind.DIRECT_COMMAND))
        result = self.orchestrator.process_query(owner, query, provider, bypass_cache)
        if owner is not None and not self.ledger.has_active(owner):
            # 同步完成（快取 / 限流 / 降級），呼叫端直接顯示結果
            self.ledger.clear_form_context(owner)
        return result

    def cancel(self, owner: str) -> bool:
        """取消玩家的活躍請求；遲到的回覆會以取消標記直接送達。"""
        cancelled = self.ledger.cancel(owner)
        if cancelled:
            self.ledger.clear_form_context(owner)
        return cancelled

    def on_player_quit(self, owner: str) -> None:
        self.ledger.cancel(owner)
        self.ledger.clear_form_context(owner)
        self.conversations.save(owner)

    def consume_ready_response(self, owner: str) -> Optional[ReadyResponse]:
        return self.ledger.consume_ready_response(owner)

    # ---- 管理操作 ----

    def reload_providers(self) -> int:
        count = self.registry.load(self.config)
        logger.info("AI providers reloaded", count=count)
        return count

    def set_default_provider(self, name: str) -> bool:
        """切換預設提供商並寫回配置。"""
        if not self.registry.set_default(name):
            return False
        self.config.set_nested("api_providers.default_provider", self.registry.default_name)
        self.config.save()
        return True
