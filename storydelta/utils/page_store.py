"""
Page Identity Store

Owns every ``PageState`` of one planning run together with the lookup maps
used to resolve operations to pages (page key -> path, title -> path) and
the set of paths already taken. One instance per run; the planner passes it
by reference through every chunk so later chunks see pages allocated by
earlier ones.
"""
from __future__ import annotations

import dataclasses
import json
import logging
from typing import Dict, Iterable, List, Optional, Set

from storydelta.errors import PathAllocationError
from storydelta.schemas import StoryDeltaOperation
from storydelta.utils.frontmatter import parse_managed_frontmatter, split_frontmatter
from storydelta.utils.summary_sections import resolve_note_summary
from storydelta.utils.text_utils import (
    normalize_newlines,
    normalize_page_key,
    normalize_text_key,
    normalize_vault_path,
    to_safe_file_stem,
)

logger = logging.getLogger(__name__)

CONTENT_BLOCK_SEPARATOR = "\n\n---\n\n"
MAX_PATH_ATTEMPTS = 10_000


@dataclasses.dataclass
class PageState:
    """Mutable per-page accumulator for one run."""

    path: str
    page_key: str
    title: str
    summary: str = ""
    keywords: List[str] = dataclasses.field(default_factory=list)
    aliases: List[str] = dataclasses.field(default_factory=list)
    tags: List[str] = dataclasses.field(default_factory=list)
    original_content: str = ""
    original_frontmatter: Optional[str] = None
    preserved_frontmatter_lines: List[str] = dataclasses.field(default_factory=list)
    content_blocks: List[str] = dataclasses.field(default_factory=list)
    created: bool = False
    touched: bool = False
    max_confidence: float = 0.0
    rationales: List[str] = dataclasses.field(default_factory=list)
    chunk_indices: Set[int] = dataclasses.field(default_factory=set)
    applied_operations: int = 0
    skipped_low_confidence: int = 0


def split_body_into_blocks(body: str) -> List[str]:
    trimmed = body.strip()
    if not trimmed:
        return []
    blocks = [block.strip() for block in trimmed.split(CONTENT_BLOCK_SEPARATOR)]
    return [block for block in blocks if block] or [trimmed]


def page_state_from_document(path: str, content: str) -> PageState:
    """Hydrate a ``PageState`` from a page's full stored text."""
    normalized_path = normalize_vault_path(path)
    document = split_frontmatter(content)
    fields = parse_managed_frontmatter(document.frontmatter)

    file_stem = normalized_path.split("/")[-1]
    if file_stem.lower().endswith(".md"):
        file_stem = file_stem[:-3]
    inferred_title = fields.title or file_stem or "entry"
    page_key = (
        normalize_page_key(fields.page_key or inferred_title)
        or normalize_page_key(inferred_title)
        or "entry"
    )

    return PageState(
        path=normalized_path,
        page_key=page_key,
        title=inferred_title,
        summary=resolve_note_summary(document.body, fields.summary),
        keywords=fields.keywords,
        aliases=fields.aliases,
        tags=fields.tags,
        original_content=normalize_newlines(content),
        original_frontmatter=document.frontmatter,
        preserved_frontmatter_lines=fields.preserved_lines,
        content_blocks=split_body_into_blocks(document.body),
    )


class PageIdentityStore:
    """Resolves operations to pages and allocates unique paths for new ones."""

    def __init__(self, target_folder: str, default_tags: Iterable[str] = ()):
        self.target_folder = target_folder
        self.default_tags = list(default_tags)
        self.page_by_path: Dict[str, PageState] = {}
        self.page_key_to_path: Dict[str, str] = {}
        self.title_to_path: Dict[str, str] = {}
        self.used_paths: Set[str] = set()

    def __len__(self) -> int:
        return len(self.page_by_path)

    def _register(self, state: PageState) -> None:
        self.page_by_path[state.path] = state
        self.used_paths.add(state.path.lower())
        if state.page_key:
            self.page_key_to_path[state.page_key] = state.path
        self.title_to_path[normalize_text_key(state.title)] = state.path

    def load_existing_pages(self, pages: Iterable[tuple[str, str]]) -> None:
        """Hydrate ``(path, content)`` pairs. Later paths win on key/title clashes."""
        states = sorted((page_state_from_document(path, content) for path, content in pages),
                        key=lambda state: state.path)
        for state in states:
            self._register(state)
        logger.info("pages_hydrated | count=%d", len(states))

    def pages(self) -> List[PageState]:
        """All pages ordered by path."""
        return sorted(self.page_by_path.values(), key=lambda state: state.path)

    def lookup(self, operation: StoryDeltaOperation) -> Optional[PageState]:
        """Existing page for *operation* by normalized key, then by title."""
        key = normalize_page_key(operation.page_key or operation.title)
        if key and key in self.page_key_to_path:
            state = self.page_by_path.get(self.page_key_to_path[key])
            if state is not None:
                return state

        title_key = normalize_text_key(operation.title or operation.page_key)
        if title_key and title_key in self.title_to_path:
            return self.page_by_path.get(self.title_to_path[title_key])
        return None

    def resolve(self, operation: StoryDeltaOperation) -> PageState:
        """Return the page *operation* targets, allocating a new one if needed."""
        existing = self.lookup(operation)
        if existing is not None:
            return existing

        key = normalize_page_key(operation.page_key or operation.title)
        stem = to_safe_file_stem(key or operation.title or "entry")
        path = self.allocate_path(stem)
        state = PageState(
            path=path,
            page_key=key or normalize_page_key(operation.title) or stem,
            title=operation.title or key or stem,
            tags=list(self.default_tags),
            created=True,
        )
        self._register(state)
        logger.info("page_allocated | page_key=%s | path=%s", state.page_key, path)
        return state

    def allocate_path(self, stem: str) -> str:
        """``{folder}/{stem}.md``, then ``-2``, ``-3``... until unused (case-insensitive)."""
        for attempt in range(1, MAX_PATH_ATTEMPTS):
            suffix = "" if attempt == 1 else f"-{attempt}"
            candidate = normalize_vault_path(f"{self.target_folder}/{stem}{suffix}.md")
            if candidate.lower() not in self.used_paths:
                self.used_paths.add(candidate.lower())
                return candidate
        raise PathAllocationError(stem)

    def snapshot_json(self, limit: int) -> str:
        """Deterministic prompt snapshot: pages by ``(page_key, path)``, capped to *limit*."""
        ordered = sorted(self.page_by_path.values(), key=lambda state: (state.page_key, state.path))
        if not ordered:
            return "[]"
        return json.dumps(
            [
                {
                    "path": state.path,
                    "pageKey": state.page_key,
                    "title": state.title,
                    "summary": state.summary,
                    "keywords": state.keywords,
                    "aliases": state.aliases,
                }
                for state in ordered[:max(0, limit)]
            ],
            indent=2,
            ensure_ascii=False,
        )
