# 代碼功能說明: 無可用提供商時的關鍵字降級回覆
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""降級回覆：純關鍵字分類，不經過任何 LLM。"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..utils.text_formatter import RED, WHITE, YELLOW, format_title

CRAFTING_KEYWORDS = ("craft", "make", "recipe")
BUILDING_KEYWORDS = ("build", "house", "material")
SERVER_KEYWORDS = ("server", "tps", "stat")

CRAFTING_FALLBACK = (
    RED + "I'm sorry, I don't have access to crafting recipes at the moment. "
    "Please check the Minecraft Wiki for crafting information."
)
BUILDING_FALLBACK = (
    RED + "I'm sorry, I can't calculate building materials at the moment. "
    "As a general rule, a small house might need around 200-500 blocks depending on the design."
)
GENERIC_FALLBACK = (
    RED + "I'm sorry, I can't process your request at the moment. "
    "Please try again later or contact a server administrator."
)


def fallback_response(query: str, stats: Optional[Dict[str, Any]] = None) -> str:
    """
    按關鍵字返回預設回覆。

    Args:
        query: 玩家查詢
        stats: 伺服器即時統計（tps / online_players / max_players，可選）

    Returns:
        降級回覆文字
    """
    lowered = query.lower()
    if any(word in lowered for word in CRAFTING_KEYWORDS):
        return CRAFTING_FALLBACK
    if any(word in lowered for word in BUILDING_KEYWORDS):
        return BUILDING_FALLBACK
    if any(word in lowered for word in SERVER_KEYWORDS):
        stats = stats or {}
        return (
            format_title("Server Statistics")
            + "\n\n"
            + f"{YELLOW}TPS: {WHITE}{stats.get('tps', 'N/A')}\n"
            + f"{YELLOW}Players: {WHITE}{stats.get('online_players', 0)}/{stats.get('max_players', 0)}"
        )
    return GENERIC_FALLBACK
