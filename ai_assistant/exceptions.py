# 代碼功能說明: AI 助手異常定義
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""AI 助手異常層級。"""

from __future__ import annotations


class AssistantError(Exception):
    """AI 助手基礎錯誤。"""


class ConfigurationError(AssistantError):
    """配置文件無法讀取或內容無效。"""

