"""Prompts for the story delta extractor model."""

from __future__ import annotations

from typing import NamedTuple

from storydelta.schemas import StoryChunk, UpdatePolicy


class DeltaPrompts(NamedTuple):
    system_prompt: str
    user_prompt: str


# --- System instruction ---

def build_system_prompt(max_operations_per_chunk: int, policy: UpdatePolicy) -> str:
    return "\n".join([
        "You propose deterministic wiki update operations from story markdown.",
        "Return JSON only, no markdown, no prose.",
        "Schema:",
        "{",
        '  "operations": [',
        "    {",
        '      "pageKey": "stable key (character/alice)",',
        '      "title": "display title",',
        '      "summary": "compact summary update",',
        '      "keywords": ["trigger keyword"],',
        '      "aliases": ["alternate name"],',
        '      "content": "durable state change or facts to add",',
        '      "confidence": 0.0,',
        '      "rationale": "why this update belongs on that page"',
        "    }",
        "  ]",
        "}",
        f"Return at most {max(1, int(max_operations_per_chunk))} operations.",
        f"Update policy: {policy.prompt_description}.",
        "Prefer existing pageKey reuse whenever possible.",
        "Title must be canonical note title only. Do not prefix title with type labels "
        'like "Character:", "Location:", or "Faction:".',
        "Content must be markdown body only (no frontmatter, no top-level # title heading).",
        "Prefer sectioned markdown with ## headings "
        "(for example ## Backstory, ## Overview, ## Relationships, ## Timeline).",
        "Do not invent facts outside the chunk.",
    ])


# --- Per-chunk user prompt ---

def build_user_prompt(chunk: StoryChunk, total_chunks: int, existing_pages_json: str) -> str:
    return "\n".join([
        f"Chunk {chunk.index}/{total_chunks}",
        "",
        "<existing_pages_json>",
        existing_pages_json,
        "</existing_pages_json>",
        "",
        "<story_chunk_markdown>",
        chunk.text,
        "</story_chunk_markdown>",
    ])


def build_prompts(
    chunk: StoryChunk,
    total_chunks: int,
    existing_pages_json: str,
    max_operations_per_chunk: int,
    policy: UpdatePolicy,
) -> DeltaPrompts:
    return DeltaPrompts(
        system_prompt=build_system_prompt(max_operations_per_chunk, policy),
        user_prompt=build_user_prompt(chunk, total_chunks, existing_pages_json),
    )
