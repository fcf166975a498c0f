"""
Line-oriented frontmatter handling for wiki pages.

Only a fixed set of managed keys is interpreted. Every other line is kept
verbatim, in order, so that rewriting a page never disturbs fields owned by
the user or by other tools.
"""
from __future__ import annotations

import dataclasses
import json
import re
from typing import List, Optional

from storydelta.utils.text_utils import normalize_newlines, unique_strings

MANAGED_FRONTMATTER_KEYS = frozenset({
    "title",
    "summary",
    "pagekey",
    "keywords",
    "aliases",
    "tags",
    "sourcetype",
})

_KEY_LINE = re.compile(r"^([A-Za-z0-9_-]+):\s*(.*)$")
_LIST_ITEM = re.compile(r"^\s*-\s*(.*)$")
_INDENTED = re.compile(r"^\s+")


@dataclasses.dataclass
class SplitDocument:
    frontmatter: Optional[str]
    body: str


@dataclasses.dataclass
class ManagedFrontmatter:
    title: str = ""
    summary: str = ""
    page_key: str = ""
    keywords: List[str] = dataclasses.field(default_factory=list)
    aliases: List[str] = dataclasses.field(default_factory=list)
    tags: List[str] = dataclasses.field(default_factory=list)
    preserved_lines: List[str] = dataclasses.field(default_factory=list)


def split_frontmatter(content: str) -> SplitDocument:
    """Split a leading ``---`` fenced block from the body. Both parts are trimmed."""
    normalized = normalize_newlines(content)
    if not normalized.startswith("---\n"):
        return SplitDocument(frontmatter=None, body=normalized.strip())
    closing = normalized.find("\n---\n", 4)
    if closing < 0:
        return SplitDocument(frontmatter=None, body=normalized.strip())
    return SplitDocument(
        frontmatter=normalized[4:closing].strip(),
        body=normalized[closing + 5:].strip(),
    )


def parse_yaml_scalar(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ("'", '"'):
        if trimmed[0] == '"':
            try:
                decoded = json.loads(trimmed)
            except json.JSONDecodeError:
                return trimmed[1:-1]
            if isinstance(decoded, str):
                return decoded
        return trimmed[1:-1]
    return trimmed


def parse_managed_frontmatter(frontmatter: Optional[str]) -> ManagedFrontmatter:
    parsed = ManagedFrontmatter()
    if not frontmatter:
        return parsed

    lists = {"keywords": [], "aliases": [], "tags": []}
    lines = frontmatter.split("\n")
    index = 0
    while index < len(lines):
        line = lines[index]
        match = _KEY_LINE.match(line)
        if not match or match.group(1).lower() not in MANAGED_FRONTMATTER_KEYS:
            parsed.preserved_lines.append(line)
            index += 1
            continue

        key = match.group(1).lower()
        value = match.group(2)
        if key == "title":
            parsed.title = parse_yaml_scalar(value)
        elif key == "summary":
            parsed.summary = parse_yaml_scalar(value)
        elif key == "pagekey":
            parsed.page_key = parse_yaml_scalar(value)

        if not value.strip():
            # Block list: consume the indented "- item" lines that follow.
            lookahead = index + 1
            while lookahead < len(lines) and _INDENTED.match(lines[lookahead]):
                item = _LIST_ITEM.match(lines[lookahead])
                if item and key in lists:
                    lists[key].append(parse_yaml_scalar(item.group(1)))
                lookahead += 1
            index = lookahead
            continue

        index += 1

    parsed.keywords = unique_strings(lists["keywords"])
    parsed.aliases = unique_strings(lists["aliases"])
    parsed.tags = unique_strings(lists["tags"])
    return parsed


def render_yaml_list(key: str, values: List[str]) -> List[str]:
    if not values:
        return []
    return [f"{key}:"] + [f"  - {json.dumps(value, ensure_ascii=False)}" for value in values]
