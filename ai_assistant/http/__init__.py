# 代碼功能說明: HTTP 執行器模組初始化
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""HTTP 模組：非阻塞請求執行器與憑證遮罩工具。"""

from .executor import HttpRequestExecutor, RetryState  # noqa: F401
from .masking import mask_headers, mask_url, redact  # noqa: F401

__all__ = [
    "HttpRequestExecutor",
    "RetryState",
    "mask_headers",
    "mask_url",
    "redact",
]
