# 代碼功能說明: AI 助手套件初始化
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""遊戲伺服器 AI 助手：多提供商異步請求編排。"""

from .config import AssistantConfig  # noqa: F401
from .runtime import AssistantRuntime  # noqa: F401

__all__ = ["AssistantConfig", "AssistantRuntime"]

__version__ = "0.1.0"
