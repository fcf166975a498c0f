"""
``## Summary`` section helpers.

A page summary lives in the body as a ``## Summary`` heading followed by a
single paragraph. The frontmatter ``summary:`` field is legacy input only:
it is read as a fallback and never written back.

The section is the heading plus its first paragraph. Further paragraphs
under the same heading are ordinary body text and are left alone, so
stripping and re-inserting the section never loses content.
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from storydelta.utils.text_utils import normalize_newlines

SUMMARY_HEADING = "## Summary"

_SUMMARY_HEADING = re.compile(r"^\s{0,3}##\s+summary\s*#*\s*$", re.IGNORECASE)
_ANY_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+\S")
_H1_HEADING = re.compile(r"^\s{0,3}#\s+\S")


def _find_summary_span(lines: List[str]) -> Optional[Tuple[int, int]]:
    """Return ``(heading_index, end_exclusive)`` of the first summary section."""
    for start, line in enumerate(lines):
        if not _SUMMARY_HEADING.match(line):
            continue
        end = start + 1
        while end < len(lines) and not lines[end].strip():
            end += 1
        while end < len(lines) and lines[end].strip() and not _ANY_HEADING.match(lines[end]):
            end += 1
        return start, end
    return None


def extract_summary_section(body: str) -> str:
    """First paragraph under ``## Summary``, collapsed to one line, or ``""``."""
    lines = normalize_newlines(body).split("\n")
    span = _find_summary_span(lines)
    if span is None:
        return ""
    start, end = span
    paragraph = " ".join(line.strip() for line in lines[start + 1:end] if line.strip())
    return re.sub(r"\s+", " ", paragraph).strip()


def resolve_note_summary(body: str, frontmatter_summary: str = "") -> str:
    """Summary precedence: body ``## Summary`` section, then frontmatter ``summary``."""
    section = extract_summary_section(body)
    if section:
        return section
    return (frontmatter_summary or "").strip()


def strip_summary_section_from_body(body: str) -> str:
    lines = normalize_newlines(body).split("\n")
    span = _find_summary_span(lines)
    if span is None:
        return normalize_newlines(body).strip()
    start, end = span
    before = "\n".join(lines[:start]).strip()
    after = "\n".join(lines[end:]).strip()
    return "\n\n".join(part for part in (before, after) if part)


def _split_leading_frontmatter(markdown: str) -> Tuple[str, str]:
    if markdown.startswith("---\n"):
        closing = markdown.find("\n---\n", 4)
        if closing >= 0:
            return markdown[:closing + 5], markdown[closing + 5:]
    return "", markdown


def upsert_summary_section_in_markdown(markdown: str, summary: str) -> str:
    """Replace the ``## Summary`` paragraph, or insert the section right after the H1.

    Frontmatter, the blank lines that open the body and the trailing newline
    are kept exactly, so upserting the same summary twice is a no-op.
    """
    summary = summary.strip()
    if not summary:
        return markdown

    head, body = _split_leading_frontmatter(normalize_newlines(markdown))
    leading = body[:len(body) - len(body.lstrip("\n"))]
    trailing = "\n" if body.endswith("\n") else ""
    core = body.strip("\n")
    lines = core.split("\n") if core else []
    section = [SUMMARY_HEADING, "", summary]

    span = _find_summary_span(lines)
    if span is not None:
        start, end = span
        rest = lines[end:]
        gap = [""] if rest and rest[0].strip() else []
        updated = lines[:start] + section + gap + rest
    else:
        cursor = 0
        while cursor < len(lines) and not lines[cursor].strip():
            cursor += 1
        if cursor < len(lines) and _H1_HEADING.match(lines[cursor]):
            head_lines = lines[:cursor + 1] + [""]
            rest = lines[cursor + 1:]
        else:
            head_lines = lines[:cursor]
            rest = lines[cursor:]
        while rest and not rest[0].strip():
            rest = rest[1:]
        updated = head_lines + section + ([""] + rest if rest else [])

    return head + leading + "\n".join(updated) + trailing
