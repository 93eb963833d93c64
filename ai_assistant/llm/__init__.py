# 代碼功能說明: LLM 編排模組初始化
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""LLM 模組：提供商適配器、註冊表與查詢編排器。"""

from .fallback import fallback_response  # noqa: F401
from .orchestrator import QueryOrchestrator  # noqa: F401
from .registry import ProviderRegistry, normalize_name  # noqa: F401
