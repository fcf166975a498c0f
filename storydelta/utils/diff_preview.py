"""Single-hunk unified-diff previews for planned page writes."""

from __future__ import annotations

from typing import List, Literal, Optional

from storydelta.schemas import DiffPreview
from storydelta.utils.text_utils import normalize_newlines

DIFF_PREVIEW_MAX_LINES = 220
TRUNCATION_MARKER = "... [truncated]"
NO_CHANGES = "(no changes)"


def split_lines(content: str) -> List[str]:
    normalized = normalize_newlines(content)
    if not normalized:
        return []
    return normalized.split("\n")


def _cap(raw: List[str]) -> tuple[str, bool]:
    truncated = len(raw) > DIFF_PREVIEW_MAX_LINES
    lines = [*raw[:DIFF_PREVIEW_MAX_LINES], TRUNCATION_MARKER] if truncated else raw
    return "\n".join(lines), truncated


def build_create_diff_preview(content: str) -> DiffPreview:
    lines = split_lines(content)
    preview, truncated = _cap([f"@@ -0,0 +1,{len(lines)} @@", *(f"+{line}" for line in lines)])
    return DiffPreview(added_lines=len(lines), removed_lines=0, preview=preview, truncated=truncated)


def build_update_diff_preview(previous_content: str, next_content: str) -> DiffPreview:
    """One hunk covering everything between the common prefix and suffix."""
    if previous_content == next_content:
        return DiffPreview(added_lines=0, removed_lines=0, preview=NO_CHANGES, truncated=False)

    before = split_lines(previous_content)
    after = split_lines(next_content)

    prefix = 0
    while prefix < len(before) and prefix < len(after) and before[prefix] == after[prefix]:
        prefix += 1

    before_end = len(before) - 1
    after_end = len(after) - 1
    while before_end >= prefix and after_end >= prefix and before[before_end] == after[after_end]:
        before_end -= 1
        after_end -= 1

    removed = before[prefix:before_end + 1]
    added = after[prefix:after_end + 1]

    raw = [f"@@ -{prefix + 1},{len(removed)} +{prefix + 1},{len(added)} @@"]
    if prefix > 0:
        raw.append(f" {before[prefix - 1]}")
    raw.extend(f"-{line}" for line in removed)
    raw.extend(f"+{line}" for line in added)
    if before_end + 1 < len(before):
        raw.append(f" {before[before_end + 1]}")

    preview, truncated = _cap(raw)
    return DiffPreview(
        added_lines=len(added),
        removed_lines=len(removed),
        preview=preview,
        truncated=truncated,
    )


def build_diff_preview(
    action: Literal["create", "update"],
    previous_content: Optional[str],
    next_content: str,
) -> DiffPreview:
    if action == "create" or not previous_content:
        return build_create_diff_preview(next_content)
    return build_update_diff_preview(previous_content, next_content)
