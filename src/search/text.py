"""Text helpers shared by lexical scoring and snippet highlighting."""

from __future__ import annotations

import re

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)
_HIGHLIGHT_OPEN = "<b>"
_HIGHLIGHT_CLOSE = "</b>"
_ELLIPSIS = "..."


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens."""
    return [token.lower() for token in _TOKEN_PATTERN.findall(text or "")]


def highlight_snippet(text: str, query_text: str, max_chars: int = 200) -> str:
    """Window ``text`` around the first query term and bold every match.

    Args:
        text: Document text
        query_text: Query whose terms are highlighted
        max_chars: Window size in characters, before markup is added

    Returns:
        Snippet with matched terms wrapped in <b>...</b>
    """
    if not text:
        return ""

    terms = set(tokenize(query_text))
    matches = [m for m in _TOKEN_PATTERN.finditer(text) if m.group().lower() in terms]

    start = 0
    if matches and matches[0].start() >= max_chars:
        start = max(0, matches[0].start() - max_chars // 4)
    end = min(len(text), start + max_chars)

    pieces: list[str] = []
    cursor = start
    for match in matches:
        if match.start() < start:
            continue
        if match.end() > end:
            break
        pieces.append(text[cursor:match.start()])
        pieces.append(f"{_HIGHLIGHT_OPEN}{match.group()}{_HIGHLIGHT_CLOSE}")
        cursor = match.end()
    pieces.append(text[cursor:end])

    snippet = "".join(pieces)
    if start > 0:
        snippet = _ELLIPSIS + snippet
    if end < len(text):
        snippet = snippet + _ELLIPSIS
    return snippet
