"""Shared fixtures and helpers for story delta tests."""

import asyncio
import json
import os
import sys
from unittest.mock import AsyncMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storydelta.schemas import ExistingPage, StoryDeltaOptions
from storydelta.services.delta_planner import build_story_delta_plan


# ---------------------------------------------------------------------------
# Sample data constants
# ---------------------------------------------------------------------------

ALICE_PAGE = "\n".join([
    "---",
    'title: "Alice"',
    'pageKey: "character/alice"',
    "---",
    "",
    "Alice is a veteran investigator.",
    "",
])

ALICE_OPERATION = {
    "pageKey": "character/alice",
    "title": "Alice",
    "summary": "Veteran investigator and courier.",
    "keywords": ["Alice"],
    "aliases": [],
    "content": "Alice returns from the tower with a sealed map.",
    "confidence": 0.95,
    "rationale": "Narrative explicitly states this event.",
}


def operations_json(*operations: dict) -> str:
    return json.dumps({"operations": list(operations)})


def stub_model(*responses: str) -> AsyncMock:
    """AsyncMock ``call_model`` returning *responses* in order (the last one repeats)."""
    queue = list(responses)

    async def _reply(system_prompt, user_prompt):
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    return AsyncMock(side_effect=_reply)


def make_options(**overrides) -> StoryDeltaOptions:
    values = {
        "story_markdown": "# Chapter 1\nAlice returns from the tower with a sealed map.",
        "target_folder": "wiki",
        "default_tags_raw": "wiki",
        "lorebook_scopes": ["story/main"],
        "tag_prefix": "lorebook",
        "update_policy": "safe_append",
        "max_chunk_chars": 500,
        "max_summary_chars": 240,
        "max_operations_per_chunk": 8,
        "max_existing_pages_in_prompt": 20,
        "low_confidence_threshold": 0.5,
        "existing_pages": [],
    }
    values.update(overrides)
    values["existing_pages"] = [
        page if isinstance(page, ExistingPage) else ExistingPage(**page)
        for page in values["existing_pages"]
    ]
    return StoryDeltaOptions(**values)


def run_plan(call_model, **overrides):
    return asyncio.run(build_story_delta_plan(make_options(**overrides), call_model))


@pytest.fixture
def alice_page():
    return {"path": "wiki/character-alice.md", "content": ALICE_PAGE}
