# 代碼功能說明: Markdown 轉 Minecraft 格式碼（§ 顏色 / 粗體 / 斜體）
# 創建日期: 2026-10-19
# 創建人: Daniel Chung
# 最後修改日期: 2026-10-19

"""Markdown 轉 Minecraft 顯示格式。

所有轉換都以正則完成；任何轉換錯誤時返回原文，超過 32KB 的輸入直接原樣返回。
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List

logger = logging.getLogger(__name__)

ESCAPE = "§"

BLACK = "§0"
DARK_BLUE = "§1"
DARK_GREEN = "§2"
DARK_AQUA = "§3"
DARK_RED = "§4"
DARK_PURPLE = "§5"
GOLD = "§6"
GRAY = "§7"
DARK_GRAY = "§8"
BLUE = "§9"
GREEN = "§a"
AQUA = "§b"
RED = "§c"
LIGHT_PURPLE = "§d"
YELLOW = "§e"
WHITE = "§f"
MINECOIN_GOLD = "§g"

BOLD = "§l"
STRIKETHROUGH = "§m"
UNDERLINE = "§n"
ITALIC = "§o"
RESET = "§r"

MAX_INPUT_LENGTH = 32 * 1024

HEADER_COLORS: Dict[int, str] = {
    1: GOLD,
    2: YELLOW,
    3: AQUA,
    4: GREEN,
    5: LIGHT_PURPLE,
    6: GRAY,
}

_FENCED_CODE = re.compile(r"```[a-zA-Z0-9_+-]*\n?(.*?)```", re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`\n]+)`")
_HEADER = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_UNORDERED_ITEM = re.compile(r"^([ \t]*)[-*+][ \t]+(.*)$", re.MULTILINE)
_ORDERED_ITEM = re.compile(r"^([ \t]*)(\d+)[.)][ \t]+(.*)$", re.MULTILINE)
_BOLD_ITALIC = re.compile(r"\*\*\*([^*\n]+)\*\*\*|___([^_\n]+)___")
_BOLD = re.compile(r"\*\*([^*\n]+)\*\*|__([^_\n]+)__")
_ITALIC = re.compile(r"\*([^*\n]+)\*|(?<!\w)_([^_\n]+)_(?!\w)")
_STRIKE = re.compile(r"~~([^~\n]+)~~")
_LINK = re.compile(r"\[([^\]\n]+)\]\(([^)\s]+)\)")
_BLOCKQUOTE = re.compile(r"^>[ \t]?(.*)$", re.MULTILINE)
_PLACEHOLDER = re.compile("\x00(\\d+)\x00")


def _either(match: "re.Match[str]") -> str:
    return match.group(1) if match.group(1) is not None else match.group(2)


def _header(match: "re.Match[str]") -> str:
    color = HEADER_COLORS[len(match.group(1))]
    return f"{color}{BOLD}{match.group(2)}{RESET}"


def markdown_to_minecraft(text: str) -> str:
    """
    將 Markdown 轉為 Minecraft 格式碼。

    Args:
        text: Markdown 文字

    Returns:
        轉換後的文字；錯誤或超長時返回原文
    """
    if not text or len(text) > MAX_INPUT_LENGTH:
        return text

    try:
        # 程式碼先抽出，避免內容被其他規則改寫
        stash: List[str] = []

        def _stash(match: "re.Match[str]") -> str:
            stash.append(f"{GRAY}{match.group(1).strip()}{RESET}")
            return f"\x00{len(stash) - 1}\x00"

        out = _FENCED_CODE.sub(_stash, text)
        out = _INLINE_CODE.sub(_stash, out)

        out = _HEADER.sub(_header, out)
        # 清單需在斜體之前處理，"* item" 不應被當作斜體
        out = _UNORDERED_ITEM.sub(lambda m: f"{m.group(1)}{YELLOW}• {WHITE}{m.group(2)}", out)
        out = _ORDERED_ITEM.sub(lambda m: f"{m.group(1)}{YELLOW}{m.group(2)}. {WHITE}{m.group(3)}", out)
        out = _BOLD_ITALIC.sub(lambda m: f"{BOLD}{ITALIC}{_either(m)}{RESET}", out)
        out = _BOLD.sub(lambda m: f"{BOLD}{_either(m)}{RESET}", out)
        out = _ITALIC.sub(lambda m: f"{ITALIC}{_either(m)}{RESET}", out)
        out = _STRIKE.sub(lambda m: f"{STRIKETHROUGH}{m.group(1)}{RESET}", out)
        out = _LINK.sub(lambda m: f"{AQUA}{m.group(1)}{GRAY} ({m.group(2)}){RESET}", out)
        out = _BLOCKQUOTE.sub(lambda m: f"{GRAY}| {ITALIC}{m.group(1)}{RESET}", out)

        return _PLACEHOLDER.sub(lambda m: stash[int(m.group(1))], out)
    except (re.error, IndexError, TypeError) as exc:
        logger.warning("Markdown conversion failed, returning input unchanged: %s", exc)
        return text


def format_text(text: str, default_color: str = WHITE) -> str:
    """轉換 Markdown，並確保開頭與每個段落都有顏色碼。"""
    out = markdown_to_minecraft(text)
    if not re.match(re.escape(ESCAPE) + "[0-9a-v]", out):
        out = default_color + out
    return re.sub(r"(\r\n\r\n|\n\n)", lambda m: m.group(1) + default_color, out)


def format_title(title: str, color: str = GOLD) -> str:
    return f"{color}{BOLD}{title}{RESET}"


def strip_formatting(text: str) -> str:
    """移除所有 § 格式碼。"""
    return re.sub(re.escape(ESCAPE) + "[0-9a-vk-or]", "", text)
