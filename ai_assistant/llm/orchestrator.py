# 代碼功能說明: 查詢編排器（快取、限流、提供商選擇、故障轉移、異步回覆路由）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""查詢編排器。

process_query 同步返回一段即時文字（處理中 / 限流 / 快取命中 / 降級回覆），
真正的回答由 HTTP 執行器的完成回調在事件循環上送達。剩餘的故障轉移列表
隨 PendingAsyncCall 一起跨過異步邊界，完成回調據此繼續嘗試下一個提供商。
"""

from __future__ import annotations

from typing import List, Optional

import structlog

from ..config import AssistantConfig, DEFAULT_SYSTEM_PROMPT
from ..http.executor import HttpRequestExecutor, truncate
from ..http.masking import collect_secrets, redact
from ..logging_config import bind_request
from ..models import SYSTEM_OWNER, HttpResult, ParseResult, PendingAsyncCall, Renderer
from ..storage.conversation_store import ConversationStore
from ..utils.rate_limiter import RateLimiter
from ..utils.request_ledger import RequestLedger, generate_request_id
from ..utils.response_cache import ResponseCache
from ..utils.server_context import ServerContext
from ..utils.text_formatter import GRAY, RED, RESET, YELLOW
from .fallback import fallback_response
from .registry import ProviderRegistry

logger = structlog.get_logger(__name__)

PROCESSING_MESSAGE = YELLOW + "Processing your request... Please wait."
RATE_LIMITED_MESSAGE = RED + "You are sending too many requests. Please wait a moment before trying again."
ERROR_MESSAGE = RED + "An error occurred while processing your request. Please try again later."
ALL_FAILED_MESSAGE = RED + "All AI providers failed to respond. Please try again later."
CANCELLED_LABEL = YELLOW + "AI request was cancelled, but a response was already generated:\n\n"
SWITCHED_NOTICE = GRAY + "(Switched to {provider} because {original} was unavailable)" + RESET + "\n\n"

FORMATTING_INSTRUCTION = """

IMPORTANT: Format your responses using Minecraft color and formatting codes instead of Markdown. Use the following codes:
- §0 to §f for colors (§6 for gold headers, §e for yellow subheadings, §f for white text)
- §l for bold text
- §o for italic text
- §n for underlined text
- §m for strikethrough text
- §r to reset formatting

Example formatting:
§6§l[Header]§r
§e[Subheading]§r
§f[Regular text]

DO NOT use Markdown formatting like #, ##, *, _, or `. Use ONLY Minecraft formatting codes."""


class QueryOrchestrator:
    """查詢編排器。"""

    def __init__(
        self,
        config: AssistantConfig,
        registry: ProviderRegistry,
        executor: HttpRequestExecutor,
        ledger: RequestLedger,
        cache: ResponseCache,
        rate_limiter: RateLimiter,
        conversations: ConversationStore,
        renderer: Renderer,
        server_context: Optional[ServerContext] = None,
    ):
        """
        初始化編排器。

        Args:
            config: 助手配置
            registry: 提供商註冊表
            executor: HTTP 執行器
            ledger: 請求台帳
            cache: 回覆快取
            rate_limiter: 限流器
            conversations: 對話歷史存儲
            renderer: 呼叫端渲染器
            server_context: 伺服器上下文（可選）
        """
        self.config = config
        self.registry = registry
        self.executor = executor
        self.ledger = ledger
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.conversations = conversations
        self.renderer = renderer
        self.server_context = server_context

    # ---- 同步入口 ----

    def process_query(
        self,
        owner: Optional[str],
        query: str,
        provider: Optional[str] = None,
        bypass_cache: bool = False,
    ) -> str:
        """
        處理一次查詢，永不拋出異常。

        Args:
            owner: 玩家名（None 表示系統查詢）
            query: 查詢文字
            provider: 指定提供商（可選，無法解析時使用預設值）
            bypass_cache: 是否跳過快取查找

        Returns:
            即時文字結果
        """
        owner_key = owner or SYSTEM_OWNER
        request_id = generate_request_id()
        try:
            return self._process(owner, owner_key, request_id, query, provider, bypass_cache)
        except Exception as exc:
            logger.error("Error processing AI query", request_id=request_id, owner=owner_key, error=str(exc), exc_info=True)
            self.ledger.remove_pending(request_id)
            self.ledger.complete(owner_key, request_id)
            return ERROR_MESSAGE

    def _process(
        self,
        owner: Optional[str],
        owner_key: str,
        request_id: str,
        query: str,
        provider: Optional[str],
        bypass_cache: bool,
    ) -> str:
        log = logger.bind(**bind_request(request_id, owner_key))
        self.ledger.track(owner_key, request_id, query)

        if owner is not None and not self.rate_limiter.check(owner):
            log.info("Request rate limited")
            self.ledger.complete(owner_key, request_id)
            return RATE_LIMITED_MESSAGE

        caching = bool(self.config.get_nested("advanced.cache_responses", True))
        if caching and not bypass_cache:
            cached = self.cache.get(query)
            if cached is not None:
                log.debug("Using cached response", query=query[:30])
                self.ledger.complete(owner_key, request_id)
                return cached

        configured = self.registry.configured_providers()
        if not configured:
            log.warning("No usable AI providers, returning fallback response", loaded=self.registry.list_names())
            self.ledger.complete(owner_key, request_id)
            stats = self.server_context.stats() if self.server_context else {}
            return fallback_response(query, stats)

        selected = self._select_provider(provider, configured, log)
        failover = [selected] + [name for name in configured if name != selected]

        include_info = self.config.get_nested("prompts.include_server_info", True)
        include_features = self.config.get_nested("prompts.include_server_features", True)
        call = PendingAsyncCall(
            request_id=request_id,
            owner_key=owner_key,
            is_player=owner is not None,
            query=query,
            history=self.conversations.get(owner) if owner is not None else [],
            system_prompt=self.system_prompt(),
            server_info=self.server_context.server_info(owner) if self.server_context and include_info else "",
            server_features=self.server_context.relevant_features(query) if self.server_context and include_features else "",
            original_provider=selected,
            remaining_providers=failover,
            use_cache=caching,
        )

        if self._dispatch_next(call):
            return PROCESSING_MESSAGE

        # 所有提供商都無法構建請求，同步回報，呼叫端直接顯示
        log.error("All AI providers failed before dispatch", errors=call.errors)
        self.ledger.clear_form_context(owner_key)
        self.ledger.complete(owner_key, request_id)
        return ALL_FAILED_MESSAGE

    def _select_provider(self, requested: Optional[str], configured: List[str], log) -> str:
        name = self.registry.resolve(requested) if requested else None
        if requested and name is None:
            log.warning(
                "Provider not found, falling back to default",
                requested=requested,
                default=self.registry.default_name,
                available=self.registry.list_names(),
            )
        name = name or self.registry.default_name
        if name not in configured:
            log.warning("Provider is not properly configured, switching", provider=name, using=configured[0])
            name = configured[0]
        return name

    def system_prompt(self) -> str:
        custom = (self.config.get_nested("prompts.custom_system_prompt", "") or "").strip()
        base = custom or self.config.get_nested("prompts.default_system_prompt", DEFAULT_SYSTEM_PROMPT)
        return base + FORMATTING_INSTRUCTION

    # ---- 故障轉移 ----

    def _dispatch_next(self, call: PendingAsyncCall) -> bool:
        """依序嘗試剩餘提供商，成功提交一個請求即返回 True。"""
        while call.remaining_providers:
            name = call.remaining_providers.pop(0)
            provider = self.registry.get(name)
            call.attempted_providers.append(name)
            if provider is None:
                call.errors.append(f"{name}: provider not available")
                continue

            built = provider.build_request(
                call.query,
                call.history,
                call.system_prompt,
                call.server_info,
                call.server_features,
            )
            if not built.success or built.request is None:
                logger.warning("Provider request build failed", request_id=call.request_id, provider=name, error=built.error)
                call.errors.append(f"{name}: {built.error}")
                continue

            call.provider_name = name
            # 累積所有嘗試過的提供商憑證，後續日誌一併遮罩
            secrets = set(call.secrets) | set(collect_secrets(built.request.headers, built.request.url))
            call.secrets = sorted(secrets, key=len, reverse=True)
            self.ledger.set_pending(call.request_id, call)
            logger.info("Dispatching AI request", request_id=call.request_id, owner=call.owner_key, provider=name)
            self.executor.submit(
                call.request_id,
                built.request,
                self._on_http_complete,
                ca_path=self.config.get_nested("advanced.cainfo_path", "") or "",
            )
            return True
        return False

    # ---- 異步完成 ----

    def _on_http_complete(self, result: HttpResult) -> None:
        try:
            self._handle_completion(result)
        except Exception as exc:
            logger.error("AI completion handling failed", request_id=result.request_id, error=str(exc), exc_info=True)
            call = self.ledger.get_pending(result.request_id)
            if call is not None:
                self.ledger.remove_pending(result.request_id)
                self.ledger.complete(call.owner_key, call.request_id)

    def _handle_completion(self, result: HttpResult) -> None:
        call = self.ledger.get_pending(result.request_id)
        if call is None:
            logger.debug("Stale or duplicate completion ignored", request_id=result.request_id)
            return
        self.ledger.remove_pending(result.request_id)
        log = logger.bind(**bind_request(call.request_id, call.owner_key))

        provider = self.registry.get(call.provider_name)
        if provider is None:
            parsed = ParseResult.failure(f"{call.provider_name}: provider no longer available")
        else:
            parsed = provider.parse_response(result.response, result)
        cancelled = self.ledger.is_cancelled(call.request_id)

        if not parsed.success:
            error = redact(parsed.error or "", call.secrets)
            log.warning(
                "Provider attempt failed",
                provider=call.provider_name,
                error=error,
                http_code=result.http_code,
                raw_body=truncate(redact(result.response or "", call.secrets)),
            )
            call.errors.append(f"{call.provider_name}: {error}")
            if cancelled:
                log.debug("Cancelled request failed, dropping result")
                self.ledger.complete(call.owner_key, call.request_id)
                return
            if self._dispatch_next(call):
                log.info("Failing over to next provider", provider=call.provider_name)
                return
            log.error("All AI providers failed", attempted=call.attempted_providers, errors=call.errors)
            self._route(call, ALL_FAILED_MESSAGE)
            self.ledger.complete(call.owner_key, call.request_id)
            return

        content = parsed.content
        if call.is_player:
            self.conversations.append(call.owner_key, call.query, content)
        if call.use_cache:
            self.cache.put(call.query, content)
        if self.config.get_nested("advanced.log_interactions", True):
            log.info("AI interaction", provider=call.provider_name, query=call.query[:30])

        text = content
        if call.provider_name != call.original_provider and self.config.get_nested("advanced.failover_notice", True):
            text = SWITCHED_NOTICE.format(
                provider=self._display_name(call.provider_name),
                original=self._display_name(call.original_provider),
            ) + text

        if cancelled:
            log.debug("Request was cancelled, but response was already generated")
            self._route_direct(call, CANCELLED_LABEL + text)
        else:
            self._route(call, text)
        self.ledger.complete(call.owner_key, call.request_id)

    def _display_name(self, name: str) -> str:
        provider = self.registry.get(name)
        return provider.name if provider is not None else name

    # ---- 回覆路由 ----

    def _route(self, call: PendingAsyncCall, text: str) -> None:
        """依 FormContext 路由回覆；讀取後即清除。"""
        owner = call.owner_key
        context = self.ledger.get_form_context(owner)
        if context is not None:
            self.ledger.clear_form_context(owner)

        if call.is_player and not self._is_online(owner):
            logger.debug("Owner offline, parking ready response", owner=owner)
            self.ledger.set_ready_response(owner, call.query, text)
            return

        try:
            if context is None or context.is_direct:
                self.renderer.render_direct(owner, call.query, text)
                return
            self.ledger.set_ready_response(owner, call.query, text)
            self.renderer.render_form(owner, context.kind, call.query, text)
        except Exception as exc:
            logger.error("Renderer failed, parking ready response", owner=owner, error=str(exc), exc_info=True)
            self.ledger.set_ready_response(owner, call.query, text)

    def _route_direct(self, call: PendingAsyncCall, text: str) -> None:
        """已取消請求的回覆：不觸碰 FormContext（可能屬於新的請求）。"""
        owner = call.owner_key
        if call.is_player and not self._is_online(owner):
            self.ledger.set_ready_response(owner, call.query, text)
            return
        try:
            self.renderer.render_direct(owner, call.query, text)
        except Exception as exc:
            logger.error("Renderer failed, parking ready response", owner=owner, error=str(exc), exc_info=True)
            self.ledger.set_ready_response(owner, call.query, text)

    def _is_online(self, owner: str) -> bool:
        try:
            return bool(self.renderer.is_online(owner))
        except Exception as exc:
            logger.warning("Renderer online check failed", owner=owner, error=str(exc))
            return False
