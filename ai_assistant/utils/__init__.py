# 代碼功能說明: 工具模組初始化
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""工具模組：請求台帳、回覆快取、限流、文字格式化與伺服器上下文。"""

from .rate_limiter import RateLimiter  # noqa: F401
from .request_ledger import RequestLedger, generate_request_id  # noqa: F401
from .response_cache import ResponseCache  # noqa: F401
from .server_context import ConfigServerContext, ServerContext  # noqa: F401
from .text_formatter import format_text, markdown_to_minecraft  # noqa: F401
