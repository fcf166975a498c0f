"""
Story chunking.

Splits story markdown into ordered chunks no longer than the configured
limit. Heading lines start new sections; whole sections are packed into a
chunk until the next one would overflow it. A single section longer than
the limit is cut on its own, preferring paragraph breaks.
"""
from __future__ import annotations

import re
from typing import List

from storydelta.schemas import StoryChunk
from storydelta.utils.text_utils import normalize_newlines

MIN_CHUNK_CHARS = 200
# A paragraph break is only used as a cut point past this share of the window.
PARAGRAPH_BREAK_MIN_RATIO = 0.45

_HEADING_LINE = re.compile(r"^#{1,6}\s+")


def split_sections(markdown: str) -> List[str]:
    normalized = normalize_newlines(markdown).strip()
    if not normalized:
        return []

    sections: List[str] = []
    current: List[str] = []
    for line in normalized.split("\n"):
        if _HEADING_LINE.match(line.strip()) and current:
            sections.append("\n".join(current).strip())
            current = [line]
            continue
        current.append(line)
    if current:
        sections.append("\n".join(current).strip())
    return [section for section in sections if section]


def split_long_text(text: str, max_chars: int) -> List[str]:
    pieces: List[str] = []
    offset = 0
    while offset < len(text):
        window = text[offset:offset + max_chars]
        if len(window) < max_chars:
            pieces.append(window.strip())
            break
        paragraph_break = window.rfind("\n\n")
        if paragraph_break > max_chars * PARAGRAPH_BREAK_MIN_RATIO:
            split_at = offset + paragraph_break
        else:
            split_at = offset + max_chars
        piece = text[offset:split_at].strip()
        if piece:
            pieces.append(piece)
        offset = split_at
    return [piece for piece in pieces if piece]


def split_story_markdown_into_chunks(story_markdown: str, max_chunk_chars: int) -> List[StoryChunk]:
    """Return 1-based, emission-ordered chunks. Empty input yields ``[]``."""
    limit = max(MIN_CHUNK_CHARS, int(max_chunk_chars))
    texts: List[str] = []
    buffer = ""

    for section in split_sections(story_markdown):
        if len(section) > limit:
            if buffer.strip():
                texts.append(buffer.strip())
            buffer = ""
            texts.extend(split_long_text(section, limit))
            continue

        if not buffer:
            buffer = section
            continue

        candidate = f"{buffer}\n\n{section}"
        if len(candidate) > limit:
            texts.append(buffer.strip())
            buffer = section
        else:
            buffer = candidate

    if buffer.strip():
        texts.append(buffer.strip())

    return [StoryChunk(index=position, text=text) for position, text in enumerate(texts, start=1)]
