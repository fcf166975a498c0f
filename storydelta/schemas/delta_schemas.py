"""
Story Delta Schema Definitions

Pydantic models for everything that crosses the planner boundary: the
validated operations parsed from model output, the planning options, and
the plan result handed to the review layer.

Usage:
    from storydelta.schemas import StoryDeltaOperation, StoryDeltaOptions

    options = StoryDeltaOptions(
        story_markdown="# Chapter 1\\nAlice finds the map.",
        target_folder="wiki",
    )

    # Serialize for the review UI (camelCase keys)
    payload = result.model_dump(by_alias=True)
"""
from __future__ import annotations

import enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storydelta.config import get_settings


class CamelModel(BaseModel):
    """
    Base model that serializes with camelCase keys.
    The review UI and the model prompt both speak camelCase, while Python
    callers keep snake_case attribute names.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UpdatePolicy(str, enum.Enum):
    """How operations may change pages that existed before the run.

    The two policies differ at exactly two decision points, both on this
    enum: metadata merge eligibility and frontmatter rewrite eligibility.
    """

    SAFE_APPEND = "safe_append"
    STRUCTURED_MERGE = "structured_merge"

    def merges_metadata(self, created: bool) -> bool:
        """Title/summary/keywords/aliases are merged for new pages or under structured_merge."""
        return self is UpdatePolicy.STRUCTURED_MERGE or created

    def rewrites_frontmatter(self, created: bool) -> bool:
        """safe_append keeps a pre-existing page's frontmatter byte-for-byte."""
        return self is UpdatePolicy.STRUCTURED_MERGE or created

    @property
    def prompt_description(self) -> str:
        if self is UpdatePolicy.STRUCTURED_MERGE:
            return "structured_merge (update summary/keywords/aliases when confidence is high)"
        return "safe_append (append durable updates without rewriting existing metadata)"


class StoryChunk(CamelModel):
    """One ordered, size-bounded slice of the story markdown."""

    index: int = Field(..., ge=1, description="1-based position in emission order")
    text: str = Field(..., description="Trimmed chunk markdown")


class StoryDeltaOperation(CamelModel):
    """One validated page update proposed by the model for a single chunk."""

    page_key: str = Field(..., description="Stable page key (falls back to title)")
    title: str = Field(default="", description="Sanitized display title")
    summary: str = Field(default="", description="Compact summary update")
    keywords: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    content: str = Field(default="", description="Markdown body fragment to append")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    rationale: str = Field(default="")

    def sort_key(self) -> tuple[str, str, str, str]:
        return (self.page_key, self.title, self.summary, self.content)


class DiffPreview(CamelModel):
    added_lines: int = 0
    removed_lines: int = 0
    preview: str = ""
    truncated: bool = False


class ExistingPage(CamelModel):
    """A page already in storage, read by the caller before planning."""

    path: str
    content: str


class PlannedPage(CamelModel):
    path: str
    content: str
    previous_content: Optional[str] = None
    page_key: str
    action: Literal["create", "update"]
    diff: DiffPreview


class PlannedChange(CamelModel):
    """Audit record for one planned page."""

    path: str
    page_key: str
    title: str
    action: Literal["create", "update"]
    confidence: float
    rationales: List[str] = Field(default_factory=list)
    chunk_indices: List[int] = Field(default_factory=list)
    applied_operations: int = 0
    skipped_low_confidence: int = 0
    diff_added_lines: int = 0
    diff_removed_lines: int = 0
    diff_truncated: bool = False


class ChunkResult(CamelModel):
    chunk_index: int
    operation_count: int
    warnings: List[str] = Field(default_factory=list)


class StoryDeltaResult(CamelModel):
    pages: List[PlannedPage] = Field(default_factory=list)
    changes: List[PlannedChange] = Field(default_factory=list)
    chunks: List[ChunkResult] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    skipped_low_confidence: int = 0


def _setting(name: str):
    return lambda: getattr(get_settings(), name)


class StoryDeltaOptions(CamelModel):
    """Inputs for one planning run. Unset knobs fall back to ``Settings``."""

    story_markdown: str
    target_folder: str
    existing_pages: List[ExistingPage] = Field(default_factory=list)
    update_policy: UpdatePolicy = Field(default_factory=lambda: UpdatePolicy(get_settings().update_policy))
    max_chunk_chars: int = Field(default_factory=_setting("max_chunk_chars"), ge=1)
    max_summary_chars: int = Field(default_factory=_setting("max_summary_chars"), ge=1)
    max_operations_per_chunk: int = Field(default_factory=_setting("max_operations_per_chunk"), ge=1)
    max_existing_pages_in_prompt: int = Field(default_factory=_setting("max_existing_pages_in_prompt"), ge=0)
    low_confidence_threshold: float = Field(
        default_factory=_setting("low_confidence_threshold"), ge=0.0, le=1.0
    )
    default_tags_raw: str = Field(default_factory=_setting("default_tags_raw"))
    lorebook_scopes: List[str] = Field(default_factory=list)
    tag_prefix: str = Field(default_factory=_setting("tag_prefix"))
