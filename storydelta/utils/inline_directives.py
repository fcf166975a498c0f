"""Inline lore directives (``[LV: ...]`` and ``<!-- LV: ... -->``) embedded in story text."""

from __future__ import annotations

import re
from typing import List

_BRACKET_DIRECTIVE = re.compile(r"\[\s*LV:\s*([^\]\r\n]+?)\s*\]", re.IGNORECASE)
_COMMENT_DIRECTIVE = re.compile(r"<!--\s*LV:\s*([\s\S]*?)-->", re.IGNORECASE)


def _normalize_directive_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def extract_inline_directives(source: str) -> List[str]:
    """Directive texts in source order, deduplicated case-insensitively."""
    if not source:
        return []

    matches = []
    for order, match in enumerate(
        [*_BRACKET_DIRECTIVE.finditer(source), *_COMMENT_DIRECTIVE.finditer(source)]
    ):
        text = _normalize_directive_text(match.group(1) or "")
        if text:
            matches.append((match.start(), order, text))
    matches.sort()

    directives: List[str] = []
    seen: set[str] = set()
    for _, _, text in matches:
        key = text.lower()
        if key in seen:
            continue
        seen.add(key)
        directives.append(text)
    return directives


def strip_inline_directives(source: str) -> str:
    if not source:
        return ""
    return _BRACKET_DIRECTIVE.sub("", _COMMENT_DIRECTIVE.sub("", source))
