"""Plain vs. rich rendering decision for outbound text."""

import re

from .models import MessageKind, RenderMode

_FENCED_CODE_RE = re.compile(r"```[\s\S]*?```")
_TABLE_SEPARATOR_CHARS = set("|-: \t")


def has_fenced_code(text: str) -> bool:
    """True when the text holds at least one paired triple-backtick block."""
    return bool(_FENCED_CODE_RE.search(text or ""))


def has_markdown_table(text: str) -> bool:
    """True when a pipe-delimited row is immediately followed by a separator row."""
    lines = (text or "").split("\n")
    for header, separator in zip(lines, lines[1:]):
        if "|" not in header or not header.strip().strip("|").strip():
            continue
        row = separator.strip()
        if "|" in row and "-" in row and set(row) <= _TABLE_SEPARATOR_CHARS:
            return True
    return False


def select_render(text: str, configured_mode: RenderMode = RenderMode.AUTO) -> MessageKind:
    """
    Decide how a final reply is rendered.

    ``rich`` always yields a card, ``plain`` always text; ``auto`` picks the
    card only for text with fenced code or a markdown table.
    """
    mode = RenderMode(configured_mode)
    if mode == RenderMode.RICH:
        return MessageKind.CARD
    if mode == RenderMode.PLAIN:
        return MessageKind.TEXT
    if has_fenced_code(text) or has_markdown_table(text):
        return MessageKind.CARD
    return MessageKind.TEXT
