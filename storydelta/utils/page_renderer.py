"""
Page rendering: ``PageState`` -> final markdown document.

``safe_append`` on a page that existed before the run keeps the original
frontmatter byte-for-byte and only re-joins the content blocks. Every other
case rebuilds the frontmatter from managed fields and lays the body out as
``# Title`` / ``## Summary`` / ``## Section``.
"""
from __future__ import annotations

import json
from typing import List

from storydelta.schemas import UpdatePolicy
from storydelta.utils.frontmatter import render_yaml_list
from storydelta.utils.page_store import CONTENT_BLOCK_SEPARATOR, PageState
from storydelta.utils.summary_sections import (
    strip_summary_section_from_body,
    upsert_summary_section_in_markdown,
)
from storydelta.utils.wiki_format import (
    build_structured_wiki_body,
    derive_wiki_title_from_page_key,
    sanitize_wiki_title,
)

EMPTY_BODY_PLACEHOLDER = "(no story delta content)"
SOURCE_TYPE = "story_delta_update"


def resolve_title(state: PageState) -> str:
    return sanitize_wiki_title(
        state.title or "",
        derive_wiki_title_from_page_key(state.page_key or state.title),
    )


def render_frontmatter(state: PageState) -> str:
    lines: List[str] = list(state.preserved_frontmatter_lines)
    lines.append(f"title: {json.dumps(resolve_title(state), ensure_ascii=False)}")
    lines.extend(render_yaml_list("aliases", state.aliases))
    lines.extend(render_yaml_list("keywords", state.keywords))
    lines.extend(render_yaml_list("tags", state.tags))
    lines.append(f"sourceType: {json.dumps(SOURCE_TYPE)}")
    lines.append(f"pageKey: {json.dumps(state.page_key, ensure_ascii=False)}")
    return "\n".join(lines).strip()


def render_page_state(state: PageState, policy: UpdatePolicy) -> str:
    raw_body = CONTENT_BLOCK_SEPARATOR.join(state.content_blocks).strip() or EMPTY_BODY_PLACEHOLDER

    if not policy.rewrites_frontmatter(state.created):
        if state.original_frontmatter:
            return f"---\n{state.original_frontmatter.strip()}\n---\n\n{raw_body}\n"
        # Never inject frontmatter into a page that had none.
        return f"{raw_body}\n"

    body_without_summary = strip_summary_section_from_body(raw_body)
    base_body = body_without_summary or ("" if state.summary else EMPTY_BODY_PLACEHOLDER)
    structured_body = build_structured_wiki_body(
        resolve_title(state),
        state.page_key,
        base_body,
        EMPTY_BODY_PLACEHOLDER,
    )
    content = f"---\n{render_frontmatter(state)}\n---\n\n{structured_body}\n"
    if not state.summary:
        return content
    return upsert_summary_section_in_markdown(content, state.summary)
