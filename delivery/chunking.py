"""
Chunked delivery pipeline.

Splits an outbound body into ordered segments that fit the backend's
message size limit. Fenced code blocks and single words are never cut;
when one of them is longer than the limit it becomes its own oversized
chunk.
"""

import re
from typing import List, Tuple

from .models import Chunk, ChunkMode

_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?。！？])\s+")
_WHITESPACE_RE = re.compile(r"\s+")

# (text, separator that preceded it in the input)
_Piece = Tuple[str, str]


def chunk_text(text: str, limit: int, mode: ChunkMode = ChunkMode.BOUNDARY) -> List[Chunk]:
    """
    Split ``text`` into chunks of at most ``limit`` characters.

    Args:
        text: Outbound body. Leading/trailing whitespace is ignored.
        limit: Maximum chunk length in characters.
        mode: ``ChunkMode.BOUNDARY`` or ``ChunkMode.LENGTH``.

    Returns:
        Ordered chunks; empty when the text is blank.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if not isinstance(text, str) or not text.strip():
        return []

    body = text.strip()
    if len(body) <= limit:
        parts = [body]
    elif ChunkMode(mode) == ChunkMode.LENGTH:
        parts = _split_fixed(body, limit)
    else:
        parts = _split_boundary(body, limit)

    return [Chunk(index=i, text=part) for i, part in enumerate(parts)]


def _split_fixed(text: str, limit: int) -> List[str]:
    parts = []
    for start in range(0, len(text), limit):
        piece = text[start : start + limit]
        if piece.strip():
            parts.append(piece)
    return parts


def _split_boundary(text: str, limit: int) -> List[str]:
    units: List[_Piece] = []
    for body, sep, is_fence in _segment(text):
        if is_fence or len(body) <= limit:
            units.append((body, sep))
        else:
            pieces = _split_prose(body, limit)
            units.append((pieces[0], sep))
            units.extend((piece, "\n") for piece in pieces[1:])
    return _pack(units, limit)


def _segment(text: str) -> List[Tuple[str, str, bool]]:
    """Break text into prose paragraphs and fenced code blocks, in order."""
    units: List[Tuple[str, str, bool]] = []
    buf: List[str] = []
    pending_sep = ""
    blank_run = False
    fence_marker = None

    def flush(is_fence: bool) -> None:
        nonlocal pending_sep
        block = "\n".join(buf).strip("\n")
        buf.clear()
        if block.strip():
            units.append((block, pending_sep if units else "", is_fence))
        pending_sep = ""

    for line in text.split("\n"):
        if fence_marker is not None:
            buf.append(line)
            if line.strip().startswith(fence_marker) and len(buf) > 1:
                flush(True)
                fence_marker = None
                pending_sep = "\n"
            continue

        match = _FENCE_RE.match(line)
        if match:
            if buf:
                flush(False)
                pending_sep = "\n"
            if blank_run:
                pending_sep = "\n\n"
                blank_run = False
            fence_marker = match.group(1)
            buf.append(line)
            continue

        if not line.strip():
            if buf:
                flush(False)
            blank_run = True
            continue

        if blank_run:
            pending_sep = "\n\n"
            blank_run = False
        buf.append(line)

    # an unterminated fence runs to the end of the text
    flush(fence_marker is not None)
    return units


def _split_prose(text: str, limit: int) -> List[str]:
    """Split an oversized paragraph by lines, then sentences, then words."""
    lines = text.split("\n")
    if len(lines) > 1:
        out: List[str] = []
        for packed in _pack([(line, "\n") for line in lines if line.strip()], limit):
            out.extend([packed] if len(packed) <= limit else _split_prose(packed, limit))
        return out

    sentences = [s for s in _SENTENCE_END_RE.split(text) if s]
    if len(sentences) > 1:
        out = []
        for packed in _pack([(s, " ") for s in sentences], limit):
            out.extend([packed] if len(packed) <= limit else _split_words(packed, limit))
        return out

    return _split_words(text, limit)


def _split_words(text: str, limit: int) -> List[str]:
    words = [w for w in _WHITESPACE_RE.split(text) if w]
    return _pack([(w, " ") for w in words], limit)


def _pack(units: List[_Piece], limit: int) -> List[str]:
    """Greedily join units, keeping each unit's original separator."""
    parts: List[str] = []
    current = ""
    for body, sep in units:
        if not current:
            current = body
            continue
        if len(current) + len(sep) + len(body) <= limit:
            current = f"{current}{sep}{body}"
        else:
            parts.append(current)
            current = body
    if current:
        parts.append(current)
    return parts
