"""Normalization helpers shared by the identity store, merge engine and renderer."""

from __future__ import annotations

import re
from typing import Iterable, List

_WHITESPACE = re.compile(r"\s+")
_PAGE_KEY_INVALID = re.compile(r"[^a-z0-9/_\s-]")
_FILE_STEM_RESERVED = re.compile(r'[<>:"/\\|?*]')
_FILE_STEM_INVALID = re.compile(r"[^a-z0-9._ -]")

SUMMARY_ELLIPSIS = "..."


def normalize_newlines(value: str) -> str:
    return value.replace("\r\n", "\n").replace("\r", "\n")


def normalize_vault_path(value: str) -> str:
    return value.replace("\\", "/")


def unique_strings(values: Iterable[str]) -> List[str]:
    """Trim, drop empties and dedupe case-insensitively; first occurrence wins."""
    deduped: List[str] = []
    seen: set[str] = set()
    for item in values:
        normalized = item.strip()
        if not normalized:
            continue
        key = normalized.lower()
        if key in seen:
            continue
        seen.add(key)
        deduped.append(normalized)
    return deduped


def _slugify(value: str) -> str:
    slug = _PAGE_KEY_INVALID.sub("", value.strip().lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = re.sub(r"/+", "/", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-/")


def normalize_page_key(value: str) -> str:
    """``"Location/Old Tower "`` -> ``"location/old-tower"``."""
    return _slugify(value)


def normalize_text_key(value: str) -> str:
    """Lookup key for titles: lowercase with collapsed whitespace."""
    return _WHITESPACE.sub(" ", value.strip().lower())


def to_safe_file_stem(value: str) -> str:
    """Filesystem-safe lowercase stem; never empty."""
    without_controls = "".join(ch for ch in value if ord(ch) >= 32)
    stem = without_controls.strip().lower()
    stem = _FILE_STEM_RESERVED.sub(" ", stem)
    stem = _FILE_STEM_INVALID.sub(" ", stem)
    stem = _WHITESPACE.sub("-", stem)
    stem = re.sub(r"-+", "-", stem)
    stem = stem.strip("-.")
    return stem or "entry"


def clamp_summary(content: str, max_chars: int) -> str:
    """Collapse to one line and clamp to ``max(80, max_chars)`` characters.

    The cut backs off to the last word boundary and appends ``...``. A
    summary that was already clamped (ends with ``...`` and fits the limit
    plus the marker) is returned unchanged so re-clamping is a no-op.
    """
    single_line = _WHITESPACE.sub(" ", content).strip()
    if not single_line:
        return ""
    limit = max(80, int(max_chars))
    if len(single_line) <= limit:
        return single_line
    if single_line.endswith(SUMMARY_ELLIPSIS) and len(single_line) - len(SUMMARY_ELLIPSIS) <= limit:
        return single_line

    cut = single_line[:limit]
    if not single_line[limit].isspace():
        boundary = cut.rfind(" ")
        if boundary > 0:
            cut = cut[:boundary]
    return f"{cut.rstrip()}{SUMMARY_ELLIPSIS}"


# ---------------------------------------------------------------------------
# Tags for newly created pages
# ---------------------------------------------------------------------------

def _normalize_tag_value(value: str) -> str:
    return value.strip().lstrip("#").strip("/")


def normalize_tag_prefix(tag_prefix: str) -> str:
    return _normalize_tag_value(tag_prefix) or "lorebook"


def normalize_lorebook_scope(name: str) -> str:
    """``"Story\\\\Main Arc"`` -> ``"story/main-arc"``."""
    return _slugify(name.replace("\\", "/"))


def parse_default_tags(raw: str) -> List[str]:
    return unique_strings(_normalize_tag_value(tag) for tag in re.split(r"[\n,]+", raw))


def build_page_tags(default_tags_raw: str, lorebook_scopes: Iterable[str], tag_prefix: str) -> List[str]:
    """Default tags followed by one ``{prefix}/{scope}`` tag per lorebook scope."""
    prefix = normalize_tag_prefix(tag_prefix)
    scope_tags = [
        f"{prefix}/{scope}"
        for scope in (normalize_lorebook_scope(name) for name in lorebook_scopes)
        if scope
    ]
    return unique_strings([*parse_default_tags(default_tags_raw), *scope_tags])
