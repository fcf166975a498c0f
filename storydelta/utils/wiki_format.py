"""Wiki page shape helpers: canonical titles and the ``# Title`` / ``## Section`` body layout."""

from __future__ import annotations

import re

from storydelta.utils.text_utils import normalize_newlines

_TYPE_PREFIX = re.compile(
    r"^(character|person|npc|protagonist|antagonist|place|location|faction|organization|org|group"
    r"|nation|realm|world|species|item|artifact|concept|event|culture)\b(?:\s*:\s*|\s+[-–—]\s+)",
    re.IGNORECASE,
)
_H1_HEADING = re.compile(r"^\s{0,3}#\s+\S")
_SECTION_HEADING = re.compile(r"^\s{0,3}#{2,6}\s+\S", re.MULTILINE)

# First page-key segment -> default section heading
_PRIMARY_HEADINGS = {
    **dict.fromkeys(("character", "person", "npc", "protagonist", "antagonist"), "Backstory"),
    **dict.fromkeys(("location", "place", "world", "nation", "realm", "region", "city"), "Overview"),
    **dict.fromkeys(("faction", "organization", "org", "group", "culture"), "Overview"),
    **dict.fromkeys(("item", "artifact", "relic", "object"), "Description"),
}


def _collapse_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", normalize_newlines(value)).strip()


def derive_wiki_title_from_page_key(page_key: str) -> str:
    """``"character/alice_vance"`` -> ``"Alice Vance"``."""
    normalized = page_key.strip()
    if not normalized:
        return "Entry"
    leaf = normalized.split("/")[-1]
    spaced = re.sub(r"\s+", " ", re.sub(r"[_-]+", " ", leaf)).strip()
    if not spaced:
        return "Entry"
    return re.sub(r"\b[^\W\d_]", lambda match: match.group(0).upper(), spaced)


def sanitize_wiki_title(raw_title: str, fallback_title: str) -> str:
    """Strip type-label prefixes such as ``"Character:"`` or ``"Faction -"``."""
    normalized = _collapse_whitespace(raw_title)
    fallback = _collapse_whitespace(fallback_title) or "Entry"
    if not normalized:
        return fallback

    value = normalized
    prior = ""
    while value and value != prior and _TYPE_PREFIX.search(value):
        prior = value
        value = _TYPE_PREFIX.sub("", value, count=1).strip()
    return value or fallback


def infer_wiki_primary_section_heading(page_key: str) -> str:
    prefix = page_key.strip().lower().split("/")[0].strip()
    return _PRIMARY_HEADINGS.get(prefix, "Details")


def _strip_leading_h1(body: str) -> str:
    lines = normalize_newlines(body).split("\n")
    cursor = 0
    while cursor < len(lines) and not lines[cursor].strip():
        cursor += 1

    if cursor < len(lines) and _H1_HEADING.match(lines[cursor].strip()):
        cursor += 1
        while cursor < len(lines) and not lines[cursor].strip():
            cursor += 1
        return "\n".join(lines[cursor:]).strip()

    return normalize_newlines(body).strip()


def normalize_wiki_section_body(raw_body: str, page_key: str) -> str:
    """Drop a leading H1; wrap heading-less text under the inferred section."""
    without_h1 = _strip_leading_h1(raw_body)
    if not without_h1:
        return ""
    if _SECTION_HEADING.search(without_h1):
        return without_h1
    heading = infer_wiki_primary_section_heading(page_key)
    return f"## {heading}\n\n{without_h1}".strip()


def build_structured_wiki_body(title: str, page_key: str, raw_body: str, empty_body_placeholder: str) -> str:
    section_body = normalize_wiki_section_body(raw_body, page_key) or (
        f"## {infer_wiki_primary_section_heading(page_key)}\n\n{empty_body_placeholder}"
    )
    return f"# {title}\n\n{section_body.strip()}".strip()
