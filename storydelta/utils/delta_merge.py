"""
Story Delta Merge Engine

Applies one validated ``StoryDeltaOperation`` to one ``PageState``.

Every merge rule is idempotent: applying the same operation again, or an
operation re-extracted from overlapping story text, leaves the page as it
was and does not mark it touched.
"""
import re
from typing import List

from storydelta.schemas import StoryDeltaOperation, UpdatePolicy
from storydelta.utils.page_store import PageState
from storydelta.utils.text_utils import (
    SUMMARY_ELLIPSIS,
    clamp_summary,
    normalize_newlines,
    unique_strings,
)

SUMMARY_JOINER = " | "


def _clamped_tail_covers(existing: str, incoming: str) -> bool:
    """True when *existing* ends in a clamped-off prefix of *incoming*."""
    if not existing.endswith(SUMMARY_ELLIPSIS):
        return False
    tail = existing[:-len(SUMMARY_ELLIPSIS)].rsplit(SUMMARY_JOINER, 1)[-1].strip().lower()
    return bool(tail) and re.sub(r"\s+", " ", incoming).strip().lower().startswith(tail)


def merge_summary(existing: str, incoming: str, max_summary_chars: int) -> str:
    """Append *incoming* to *existing* unless it is already contained in it.

    A summary clamped in a previous run keeps only a prefix of the text it
    was built from; that prefix also counts as containing *incoming*.
    """
    if not incoming:
        return existing
    if not existing:
        return clamp_summary(incoming, max_summary_chars)
    if incoming.lower() in existing.lower() or _clamped_tail_covers(existing, incoming):
        return clamp_summary(existing, max_summary_chars)
    return clamp_summary(f"{existing}{SUMMARY_JOINER}{incoming}", max_summary_chars)


def normalize_block_key(value: str) -> str:
    return re.sub(r"\s+", " ", normalize_newlines(value)).strip().lower()


def has_content_block(content_blocks: List[str], candidate: str) -> bool:
    """True when *candidate* and some block contain one another after normalization.

    An empty candidate counts as present, so it is never appended.
    """
    candidate_key = normalize_block_key(candidate)
    if not candidate_key:
        return True
    for block in content_blocks:
        block_key = normalize_block_key(block)
        if not block_key:
            continue
        if candidate_key in block_key or block_key in candidate_key:
            return True
    return False


def _metadata(state: PageState) -> tuple:
    return (state.title, state.summary, tuple(state.keywords), tuple(state.aliases))


def apply_operation(
    state: PageState,
    operation: StoryDeltaOperation,
    policy: UpdatePolicy,
    max_summary_chars: int,
    chunk_index: int,
) -> None:
    """Merge *operation* into *state* in place.

    Args:
        state: Target page, already resolved by the identity store
        operation: Validated operation above the confidence threshold
        policy: Active update policy (decides metadata eligibility)
        max_summary_chars: Clamp for the merged summary
        chunk_index: Source chunk, recorded for the audit trail
    """
    if policy.merges_metadata(state.created):
        before = _metadata(state)
        if not state.title and operation.title:
            state.title = operation.title
        state.summary = merge_summary(state.summary, operation.summary, max_summary_chars)
        state.keywords = unique_strings([*state.keywords, *operation.keywords])
        state.aliases = unique_strings([*state.aliases, *operation.aliases])
        if _metadata(state) != before:
            state.touched = True

    if operation.content and not has_content_block(state.content_blocks, operation.content):
        state.content_blocks.append(operation.content.strip())
        state.touched = True

    state.max_confidence = max(state.max_confidence, operation.confidence)
    if operation.rationale:
        state.rationales = unique_strings([*state.rationales, operation.rationale])
    state.chunk_indices.add(chunk_index)
    state.applied_operations += 1
