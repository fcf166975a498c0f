"""Tests for the command line planner's file helpers."""

import asyncio
import importlib.util
import os

import pytest

from storydelta.schemas import DiffPreview, PlannedPage, StoryDeltaResult

from conftest import ALICE_OPERATION, ALICE_PAGE, operations_json, stub_model

SCRIPT = os.path.join(os.path.dirname(__file__), "..", "scripts", "plan_story_delta.py")


@pytest.fixture(scope="module")
def cli():
    module_spec = importlib.util.spec_from_file_location("plan_story_delta", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_load_existing_pages(cli, tmp_path):
    (tmp_path / "wiki" / "character").mkdir(parents=True)
    (tmp_path / "wiki" / "character" / "alice.md").write_text(ALICE_PAGE, encoding="utf-8")
    (tmp_path / "wiki" / "notes.txt").write_text("ignored", encoding="utf-8")

    pages = cli.load_existing_pages(tmp_path, "wiki")

    assert [page.path for page in pages] == ["wiki/character/alice.md"]
    assert pages[0].content == ALICE_PAGE
    assert cli.load_existing_pages(tmp_path, "missing") == []


def test_read_story_modes(cli, tmp_path):
    first = tmp_path / "ch01.md"
    second = tmp_path / "ch02.md"
    first.write_text("# One\n", encoding="utf-8")
    second.write_text("# Two\n", encoding="utf-8")
    paths = [str(first), str(second)]

    assert cli.read_story(paths, "note", 1) == "# Two"
    assert cli.read_story(paths, "chapter", 0) == "# One"
    assert cli.read_story(paths, "story", 1) == "# One\n\n# Two"
    assert cli.read_story(paths, "chapter", 5) == ""


def test_write_pages(cli, tmp_path):
    result = StoryDeltaResult(pages=[
        PlannedPage(
            path="wiki/item-map.md",
            content="# Map\n",
            page_key="item/map",
            action="create",
            diff=DiffPreview(added_lines=2, preview="@@ -0,0 +1,2 @@\n+# Map\n+"),
        ),
    ])

    assert cli.write_pages(tmp_path, result) == 1
    assert (tmp_path / "wiki" / "item-map.md").read_text(encoding="utf-8") == "# Map\n"


def test_main_applies_plan(cli, tmp_path, monkeypatch, capsys):
    (tmp_path / "wiki").mkdir()
    (tmp_path / "wiki" / "character-alice.md").write_text(ALICE_PAGE, encoding="utf-8")
    story = tmp_path / "ch01.md"
    story.write_text("# Chapter 1\nAlice returns from the tower with a sealed map.\n", encoding="utf-8")
    monkeypatch.setattr(cli, "GeminiModelCaller", lambda model_name=None: stub_model(operations_json(ALICE_OPERATION)))

    args = cli.parse_args([str(story), "--vault", str(tmp_path), "--policy", "safe_append", "--apply"])
    assert asyncio.run(cli.main(args)) == 0

    written = (tmp_path / "wiki" / "character-alice.md").read_text(encoding="utf-8")
    assert written.endswith("Alice returns from the tower with a sealed map.\n")
    assert "Wrote 1 page(s)" in capsys.readouterr().out
