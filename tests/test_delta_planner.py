"""
Tests for the story delta planner.

The model is replaced by an ``AsyncMock`` so every scenario is deterministic
and runs offline.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from storydelta.errors import PathAllocationError, PlanPreconditionError
from storydelta.utils import page_store

from conftest import ALICE_OPERATION, ALICE_PAGE, operations_json, run_plan, stub_model


TWO_CHAPTERS = (
    "# Chapter 1\n" + "Alice climbs the tower stairs at dawn. " * 4
    + "\n# Chapter 2\n" + "Rowan fortifies the tower walls before dusk. " * 4
)

TOWER_OPERATION = {
    "pageKey": "location/old-tower",
    "title": "Old Tower",
    "summary": "Main fortified location.",
    "keywords": ["Old Tower"],
    "aliases": [],
    "content": "## Overview\n\nReinforced with new defenses.",
    "confidence": 0.9,
    "rationale": "The chapter describes new fortifications.",
}


class TestPreconditions:

    def test_empty_story(self):
        call_model = stub_model(operations_json())
        with pytest.raises(PlanPreconditionError, match="Story markdown is empty"):
            run_plan(call_model, story_markdown="  [LV: nothing else]\n<!-- LV: here -->  ")
        call_model.assert_not_awaited()

    def test_empty_target_folder(self):
        call_model = stub_model(operations_json())
        with pytest.raises(PlanPreconditionError, match="Target folder is required"):
            run_plan(call_model, target_folder=" / ")
        call_model.assert_not_awaited()


class TestSafeAppend:

    def test_appends_to_existing_page(self, alice_page):
        result = run_plan(stub_model(operations_json(ALICE_OPERATION)), existing_pages=[alice_page])

        assert len(result.pages) == 1
        page = result.pages[0]
        assert page.action == "update"
        assert page.path == "wiki/character-alice.md"
        assert page.previous_content == ALICE_PAGE
        assert page.content == (
            '---\ntitle: "Alice"\npageKey: "character/alice"\n---\n\n'
            "Alice is a veteran investigator.\n\n---\n\n"
            "Alice returns from the tower with a sealed map.\n"
        )
        assert page.diff.added_lines > 0
        assert page.diff.removed_lines == 0

        [change] = result.changes
        assert change.applied_operations == 1
        assert change.chunk_indices == [1]
        assert change.confidence == pytest.approx(0.95)
        assert change.rationales == ["Narrative explicitly states this event."]
        assert result.warnings == []

    def test_second_run_is_a_no_op(self, alice_page):
        first = run_plan(stub_model(operations_json(ALICE_OPERATION)), existing_pages=[alice_page])
        updated = {"path": first.pages[0].path, "content": first.pages[0].content}

        second = run_plan(stub_model(operations_json(ALICE_OPERATION)), existing_pages=[updated])
        assert second.pages == []
        assert second.changes == []
        assert second.chunks[0].operation_count == 1

    def test_content_already_present(self):
        page = {
            "path": "wiki/character-alice.md",
            "content": ALICE_PAGE.replace(
                "Alice is a veteran investigator.",
                "Alice returns from the tower\nwith a sealed map.",
            ),
        }
        result = run_plan(stub_model(operations_json(ALICE_OPERATION)), existing_pages=[page])
        assert result.pages == []

    def test_preserves_unmanaged_frontmatter(self):
        content = '---\ntitle: "Alice"\npageKey: "character/alice"\ncustomField: 1\n---\n\nOld body.\n'
        page = {"path": "wiki/character-alice.md", "content": content}

        result = run_plan(stub_model(operations_json(ALICE_OPERATION)), existing_pages=[page])

        assert result.pages[0].content.startswith(
            '---\ntitle: "Alice"\npageKey: "character/alice"\ncustomField: 1\n---\n\nOld body.'
        )

    def test_never_injects_frontmatter(self):
        page = {"path": "wiki/Alice.md", "content": "Plain notes about Alice.\n"}
        operation = dict(ALICE_OPERATION, pageKey="people/alice-v")

        result = run_plan(stub_model(operations_json(operation)), existing_pages=[page])

        assert [p.path for p in result.pages] == ["wiki/Alice.md"]
        assert result.pages[0].content == (
            "Plain notes about Alice.\n\n---\n\nAlice returns from the tower with a sealed map.\n"
        )

    def test_metadata_only_operation_leaves_existing_page_alone(self, alice_page):
        operation = dict(ALICE_OPERATION, content="", summary="Brand new summary.", aliases=["Al"])
        result = run_plan(stub_model(operations_json(operation)), existing_pages=[alice_page])
        assert result.pages == []


class TestStructuredMerge:

    def test_creates_structured_page(self):
        result = run_plan(
            stub_model(operations_json(TOWER_OPERATION)),
            update_policy="structured_merge",
        )

        [page] = result.pages
        assert page.path == "wiki/location-old-tower.md"
        assert page.action == "create"
        assert page.previous_content is None
        assert page.diff.preview.startswith("@@ -0,0 +1,")
        assert "# Old Tower\n\n## Summary\n\nMain fortified location.\n\n## Overview\n\nReinforced with new defenses." in page.content
        assert '  - "lorebook/story/main"' in page.content
        assert 'sourceType: "story_delta_update"' in page.content
        assert "summary:" not in page.content

    def test_second_run_is_a_no_op(self):
        first = run_plan(stub_model(operations_json(TOWER_OPERATION)), update_policy="structured_merge")
        created = {"path": first.pages[0].path, "content": first.pages[0].content}

        second = run_plan(
            stub_model(operations_json(TOWER_OPERATION)),
            update_policy="structured_merge",
            existing_pages=[created],
        )
        assert second.pages == []

    def test_second_run_with_clamped_summary_is_a_no_op(self):
        operation = dict(TOWER_OPERATION, summary=(
            "The old tower guards the northern pass and shelters every caravan "
            "that crosses the frozen valley before the winter storms arrive."
        ))
        first = run_plan(
            stub_model(operations_json(operation)),
            update_policy="structured_merge",
            max_summary_chars=80,
        )
        created = {"path": first.pages[0].path, "content": first.pages[0].content}
        assert "## Summary\n\nThe old tower guards the northern pass and shelters every caravan that crosses...\n" in created["content"]

        second = run_plan(
            stub_model(operations_json(operation)),
            update_policy="structured_merge",
            max_summary_chars=80,
            existing_pages=[created],
        )
        assert second.pages == []
        assert second.changes == []

    def test_merges_metadata_into_existing_page(self, alice_page):
        result = run_plan(
            stub_model(operations_json(ALICE_OPERATION)),
            update_policy="structured_merge",
            existing_pages=[alice_page],
        )

        content = result.pages[0].content
        assert content.startswith('---\ntitle: "Alice"\nkeywords:\n  - "Alice"\nsourceType: "story_delta_update"\n')
        assert "## Summary\n\nVeteran investigator and courier." in content
        assert "## Backstory\n\nAlice is a veteran investigator." in content
        assert content.endswith("Alice returns from the tower with a sealed map.\n")

    def test_migrates_legacy_frontmatter_summary(self):
        content = '---\ntitle: "Alice"\npageKey: "character/alice"\nsummary: "Investigator."\n---\n\nBody.\n'
        page = {"path": "wiki/character-alice.md", "content": content}

        result = run_plan(
            stub_model(operations_json(ALICE_OPERATION)),
            update_policy="structured_merge",
            existing_pages=[page],
        )

        rendered = result.pages[0].content
        assert "summary:" not in rendered
        assert "## Summary\n\nInvestigator. | Veteran investigator and courier." in rendered


class TestConfidenceGating:

    def test_low_confidence_operation_is_skipped(self):
        operation = dict(ALICE_OPERATION, pageKey="character/bran", title="Bran", confidence=0.2)
        result = run_plan(stub_model(operations_json(operation)))

        assert result.pages == []
        assert result.changes == []
        assert result.skipped_low_confidence == 1
        assert result.warnings == ["Chunk 1: skipped low-confidence operation (0.20) for character/bran."]
        assert result.chunks[0].operation_count == 1
        assert result.chunks[0].warnings == []

    def test_skip_is_recorded_on_touched_page(self, alice_page):
        weak = dict(ALICE_OPERATION, content="Alice may be a spy.", confidence=0.3)
        result = run_plan(stub_model(operations_json(ALICE_OPERATION, weak)), existing_pages=[alice_page])

        [change] = result.changes
        assert change.applied_operations == 1
        assert change.skipped_low_confidence == 1
        assert change.confidence == pytest.approx(0.95)
        assert "spy" not in result.pages[0].content

    def test_low_confidence_allocates_page_used_by_later_chunk(self):
        weak = dict(TOWER_OPERATION, pageKey="character/bran", title="Bran", confidence=0.2)
        strong = dict(TOWER_OPERATION, pageKey="character/bran", title="Bran", confidence=0.9)

        result = run_plan(
            stub_model(operations_json(weak), operations_json(strong)),
            story_markdown=TWO_CHAPTERS,
            max_chunk_chars=200,
        )

        [change] = result.changes
        assert change.path == "wiki/character-bran.md"
        assert change.action == "create"
        assert change.skipped_low_confidence == 1
        assert change.applied_operations == 1
        assert change.chunk_indices == [2]
        assert result.skipped_low_confidence == 1

    def test_low_confidence_allocation_reserves_path(self):
        weak = dict(TOWER_OPERATION, pageKey="character/bran", title="Bran", confidence=0.2)
        other = dict(TOWER_OPERATION, pageKey="Character Bran", title="Bran the Younger", confidence=0.9)

        result = run_plan(
            stub_model(operations_json(weak), operations_json(other)),
            story_markdown=TWO_CHAPTERS,
            max_chunk_chars=200,
        )

        assert [page.path for page in result.pages] == ["wiki/character-bran-2.md"]
        assert result.pages[0].page_key == "character-bran"

    def test_threshold_is_inclusive(self):
        operation = dict(TOWER_OPERATION, confidence=0.5)
        result = run_plan(stub_model(operations_json(operation)))
        assert result.skipped_low_confidence == 0
        assert len(result.pages) == 1


class TestChunkFailures:

    def test_model_error_becomes_warning(self):
        call_model = AsyncMock(side_effect=[
            RuntimeError("model unavailable"),
            operations_json(TOWER_OPERATION),
        ])

        result = run_plan(call_model, story_markdown=TWO_CHAPTERS, max_chunk_chars=200)

        assert [chunk.chunk_index for chunk in result.chunks] == [1, 2]
        assert result.chunks[0].operation_count == 0
        assert result.chunks[0].warnings == ["model unavailable"]
        assert result.chunks[1].warnings == []
        assert result.warnings == ["Chunk 1: model unavailable"]
        assert [page.path for page in result.pages] == ["wiki/location-old-tower.md"]
        assert result.changes[0].chunk_indices == [2]

    def test_unparseable_reply_becomes_warning(self):
        result = run_plan(stub_model("I could not find anything."))
        assert result.warnings == ["Chunk 1: Response did not contain a JSON object."]
        assert result.pages == []

    def test_missing_operations_array(self):
        result = run_plan(stub_model('{"pages": []}'))
        assert result.warnings == ["Chunk 1: Story delta payload missing operations array."]

    def test_path_exhaustion_aborts_the_run(self, monkeypatch):
        monkeypatch.setattr(page_store, "MAX_PATH_ATTEMPTS", 2)
        taken = {"path": "wiki/location-old-tower.md", "content": "---\npageKey: other\n---\n\nBody.\n"}
        with pytest.raises(PathAllocationError):
            run_plan(stub_model(operations_json(TOWER_OPERATION)), existing_pages=[taken])

    def test_cancellation_propagates(self):
        call_model = AsyncMock(side_effect=[
            operations_json(TOWER_OPERATION),
            asyncio.CancelledError(),
        ])

        with pytest.raises(asyncio.CancelledError):
            run_plan(call_model, story_markdown=TWO_CHAPTERS, max_chunk_chars=200)
        assert call_model.await_count == 2


class TestCrossChunkIdentity:

    def test_later_chunk_reuses_page_from_earlier_chunk(self):
        first = dict(TOWER_OPERATION, pageKey="location/tower", title="Tower", content="Stone walls.")
        second = dict(TOWER_OPERATION, pageKey="Location/Tower ", title="Tower", content="A new watch post.")
        call_model = stub_model(operations_json(first), operations_json(second))

        result = run_plan(call_model, story_markdown=TWO_CHAPTERS, max_chunk_chars=200)

        [change] = result.changes
        assert change.path == "wiki/location-tower.md"
        assert change.applied_operations == 2
        assert change.chunk_indices == [1, 2]
        assert "Stone walls.\n\n---\n\nA new watch post." in result.pages[0].content

        second_prompt = call_model.await_args_list[1].args[1]
        assert "Chunk 2/2" in second_prompt
        assert '"pageKey": "location/tower"' in second_prompt

    def test_prompt_snapshot_respects_limit(self, alice_page):
        call_model = stub_model(operations_json())
        run_plan(call_model, existing_pages=[alice_page], max_existing_pages_in_prompt=0)
        user_prompt = call_model.await_args.args[1]
        assert "<existing_pages_json>\n[]\n</existing_pages_json>" in user_prompt


class TestDeterminism:

    def test_same_inputs_same_plan(self, alice_page):
        other = {"path": "wiki/location-old-tower.md", "content": '---\ntitle: "Old Tower"\n---\n\nStone.\n'}
        reply = operations_json(TOWER_OPERATION, ALICE_OPERATION)

        first = run_plan(stub_model(reply), existing_pages=[alice_page, other])
        second = run_plan(stub_model(reply), existing_pages=[other, alice_page])

        assert first.model_dump() == second.model_dump()
        assert [page.path for page in first.pages] == sorted(page.path for page in first.pages)

    def test_result_serializes_with_camel_case(self, alice_page):
        result = run_plan(stub_model(operations_json(ALICE_OPERATION)), existing_pages=[alice_page])
        payload = result.model_dump(by_alias=True)
        assert set(payload) == {"pages", "changes", "chunks", "warnings", "skippedLowConfidence"}
        assert "previousContent" in payload["pages"][0]
        assert "chunkIndices" in payload["changes"][0]
