"""
Story Delta Planner

Turns story markdown plus the current wiki pages into a reviewable plan of
page creates/updates, using the model as a per-chunk extraction oracle.

Chunks run strictly in order: each prompt carries a snapshot of the pages
merged so far, so identity resolution in chunk N sees everything chunks
1..N-1 produced. A chunk whose model call or parse fails contributes no
operations and a warning; it never aborts the run. Operations of a chunk
are applied only after the whole reply parsed, so a chunk is either fully
applied or not at all.
"""
from __future__ import annotations

import time
import uuid
from typing import Awaitable, Callable, List, Tuple

from storydelta.agents.delta_extractor import build_prompts
from storydelta.errors import PlanPreconditionError
from storydelta.schemas import (
    ChunkResult,
    PlannedChange,
    PlannedPage,
    StoryDeltaOperation,
    StoryDeltaOptions,
    StoryDeltaResult,
)
from storydelta.utils.chunker import split_story_markdown_into_chunks
from storydelta.utils.delta_merge import apply_operation
from storydelta.utils.diff_preview import build_diff_preview
from storydelta.utils.inline_directives import strip_inline_directives
from storydelta.utils.json_extractor import parse_story_delta_operations
from storydelta.utils.logging_config import PlanAdapter, get_logger
from storydelta.utils.page_renderer import render_page_state
from storydelta.utils.page_store import PageIdentityStore, PageState
from storydelta.utils.text_utils import build_page_tags, normalize_vault_path

ModelCallback = Callable[[str, str], Awaitable[str]]

_logger = get_logger(__name__)


def _validate_inputs(options: StoryDeltaOptions) -> Tuple[str, str]:
    story_markdown = strip_inline_directives(options.story_markdown).strip()
    if not story_markdown:
        raise PlanPreconditionError("Story markdown is empty.")

    target_folder = normalize_vault_path(options.target_folder.strip()).strip("/")
    if not target_folder:
        raise PlanPreconditionError("Target folder is required.")

    return story_markdown, target_folder


def _apply_chunk_operations(
    store: PageIdentityStore,
    operations: List[StoryDeltaOperation],
    options: StoryDeltaOptions,
    chunk_index: int,
) -> Tuple[List[str], int]:
    """Gate and merge one chunk's operations. Returns ``(warnings, skipped_count)``."""
    warnings: List[str] = []
    skipped = 0
    for operation in operations:
        state = store.resolve(operation)
        if operation.confidence < options.low_confidence_threshold:
            # Resolved anyway so repeated low-confidence mentions stay traceable per page.
            skipped += 1
            state.skipped_low_confidence += 1
            state.max_confidence = max(state.max_confidence, operation.confidence)
            warnings.append(
                f"Chunk {chunk_index}: skipped low-confidence operation "
                f"({operation.confidence:.2f}) for {operation.page_key or operation.title}."
            )
            continue
        apply_operation(state, operation, options.update_policy, options.max_summary_chars, chunk_index)
    return warnings, skipped


def _plan_page(state: PageState, options: StoryDeltaOptions) -> Tuple[PlannedPage, PlannedChange] | None:
    if not state.touched:
        return None

    rendered = render_page_state(state, options.update_policy)
    if not state.created and rendered == state.original_content:
        return None

    action = "create" if state.created else "update"
    previous_content = None if state.created else state.original_content
    diff = build_diff_preview(action, previous_content, rendered)

    page = PlannedPage(
        path=state.path,
        content=rendered,
        previous_content=previous_content,
        page_key=state.page_key,
        action=action,
        diff=diff,
    )
    change = PlannedChange(
        path=state.path,
        page_key=state.page_key,
        title=state.title,
        action=action,
        confidence=state.max_confidence,
        rationales=list(state.rationales),
        chunk_indices=sorted(state.chunk_indices),
        applied_operations=state.applied_operations,
        skipped_low_confidence=state.skipped_low_confidence,
        diff_added_lines=diff.added_lines,
        diff_removed_lines=diff.removed_lines,
        diff_truncated=diff.truncated,
    )
    return page, change


async def build_story_delta_plan(options: StoryDeltaOptions, call_model: ModelCallback) -> StoryDeltaResult:
    """
    Build the page plan for *options*.

    Args:
        options: Story text, existing pages, policy and planner knobs
        call_model: ``async (system_prompt, user_prompt) -> str``; the only
                    model dependency. Retries and timeouts are its concern.

    Raises:
        PlanPreconditionError: empty story, empty target folder, or no chunks
        PathAllocationError: no free path for a new page
    """
    logger = PlanAdapter(_logger, plan_id=uuid.uuid4().hex[:12])
    started = time.monotonic()

    story_markdown, target_folder = _validate_inputs(options)
    chunks = split_story_markdown_into_chunks(story_markdown, options.max_chunk_chars)
    if not chunks:
        raise PlanPreconditionError("No extractable story chunks were produced.")

    store = PageIdentityStore(
        target_folder,
        build_page_tags(options.default_tags_raw, options.lorebook_scopes, options.tag_prefix),
    )
    store.load_existing_pages((page.path, page.content) for page in options.existing_pages)
    logger.info(
        "plan_started | chunks=%d | existing_pages=%d | policy=%s",
        len(chunks), len(store), options.update_policy.value,
    )

    warnings: List[str] = []
    chunk_results: List[ChunkResult] = []
    skipped_low_confidence = 0

    for chunk in chunks:
        prompts = build_prompts(
            chunk,
            len(chunks),
            store.snapshot_json(options.max_existing_pages_in_prompt),
            options.max_operations_per_chunk,
            options.update_policy,
        )

        try:
            raw = await call_model(prompts.system_prompt, prompts.user_prompt)
            operations = parse_story_delta_operations(raw, options.max_operations_per_chunk)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            warnings.append(f"Chunk {chunk.index}: {message}")
            chunk_results.append(ChunkResult(chunk_index=chunk.index, operation_count=0, warnings=[message]))
            logger.warning("chunk_failed | error=%s", message, extra={"chunk_index": chunk.index})
            continue

        chunk_warnings, skipped = _apply_chunk_operations(store, operations, options, chunk.index)
        warnings.extend(chunk_warnings)
        skipped_low_confidence += skipped
        chunk_results.append(ChunkResult(chunk_index=chunk.index, operation_count=len(operations)))
        logger.info(
            "chunk_applied | operations=%d | skipped_low_confidence=%d",
            len(operations), skipped, extra={"chunk_index": chunk.index},
        )

    pages: List[PlannedPage] = []
    changes: List[PlannedChange] = []
    for state in store.pages():
        planned = _plan_page(state, options)
        if planned is None:
            continue
        pages.append(planned[0])
        changes.append(planned[1])

    pages.sort(key=lambda page: page.path)
    changes.sort(key=lambda change: change.path)

    logger.info(
        "plan_completed | pages=%d | warnings=%d | skipped_low_confidence=%d",
        len(pages), len(warnings), skipped_low_confidence,
        extra={"duration_ms": int((time.monotonic() - started) * 1000)},
    )
    return StoryDeltaResult(
        pages=pages,
        changes=changes,
        chunks=chunk_results,
        warnings=warnings,
        skipped_low_confidence=skipped_low_confidence,
    )
