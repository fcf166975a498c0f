#!/usr/bin/env python3
"""
Plan (and optionally apply) wiki updates from story files.

Reads the story markdown and every ``*.md`` page under the wiki folder,
runs the story delta planner against Gemini, prints a summary with diffs,
and with ``--apply`` writes the planned pages back under the vault root.

Story files are given in reading order. ``--source note`` (default) and
``--source chapter`` read the file at ``--index``; ``--source story`` reads
all of them, joined in order.

Run with:
  python scripts/plan_story_delta.py story/ch01.md --vault ./vault --target-folder wiki
  python scripts/plan_story_delta.py story/ch01.md story/ch02.md --source story --policy structured_merge --apply
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from storydelta.config import get_settings
from storydelta.errors import StoryDeltaError
from storydelta.schemas import ExistingPage, StoryDeltaOptions, StoryDeltaResult, UpdatePolicy
from storydelta.services.delta_planner import build_story_delta_plan
from storydelta.services.model_service import GeminiModelCaller
from storydelta.utils.logging_config import setup_logging
from storydelta.utils.story_source import StorySourceMode, resolve_story_delta_source_paths


def read_story(paths: list[str], mode: str, index: int) -> str:
    selected = paths[index] if 0 <= index < len(paths) else ""
    sources = resolve_story_delta_source_paths(StorySourceMode(mode), selected, paths, index)
    return "\n\n".join(Path(path).read_text(encoding="utf-8").strip() for path in sources)


def load_existing_pages(vault: Path, folder: str) -> list[ExistingPage]:
    root = vault / folder
    if not root.is_dir():
        return []
    return [
        ExistingPage(path=path.relative_to(vault).as_posix(), content=path.read_text(encoding="utf-8"))
        for path in sorted(root.rglob("*.md"))
    ]


def write_pages(vault: Path, result: StoryDeltaResult) -> int:
    for page in result.pages:
        destination = vault / page.path
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(page.content, encoding="utf-8")
    return len(result.pages)


def print_result(result: StoryDeltaResult, show_diffs: bool) -> None:
    for chunk in result.chunks:
        status = "ok" if not chunk.warnings else "failed"
        print(f"[chunk {chunk.chunk_index}] {status} operations={chunk.operation_count}")
    for warning in result.warnings:
        print(f"[warn] {warning}")
    for change in result.changes:
        print(
            f"{change.action:6} {change.path} (+{change.diff_added_lines}/-{change.diff_removed_lines}, "
            f"confidence={change.confidence:.2f}, ops={change.applied_operations})"
        )
    if show_diffs:
        for page in result.pages:
            print(f"\n--- {page.path}")
            print(page.diff.preview)
    print(f"\n{len(result.pages)} page(s) planned, {result.skipped_low_confidence} low-confidence skip(s).")


async def main(args: argparse.Namespace) -> int:
    settings = get_settings()
    vault = Path(args.vault)
    options = StoryDeltaOptions(
        story_markdown=read_story(args.story, args.source, args.index),
        target_folder=args.target_folder,
        existing_pages=load_existing_pages(vault, args.target_folder),
        update_policy=UpdatePolicy(args.policy or settings.update_policy),
        default_tags_raw=args.tags if args.tags is not None else settings.default_tags_raw,
        lorebook_scopes=args.scope or [],
    )

    try:
        result = await build_story_delta_plan(options, GeminiModelCaller(model_name=args.model))
    except StoryDeltaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    else:
        print_result(result, show_diffs=not args.no_diff)

    if args.apply and result.pages:
        written = write_pages(vault, result)
        print(f"Wrote {written} page(s) under {vault}.")
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan wiki page updates from story markdown.")
    parser.add_argument("story", nargs="+", help="Story markdown files in reading order")
    parser.add_argument("--source", choices=[m.value for m in StorySourceMode], default="note",
                        help="Which story files feed the run")
    parser.add_argument("--index", type=int, default=0, help="Selected story file position")
    parser.add_argument("--vault", default=".", help="Vault root that page paths are relative to")
    parser.add_argument("--target-folder", default="wiki", help="Vault folder for new pages")
    parser.add_argument("--policy", choices=[p.value for p in UpdatePolicy], help="Update policy")
    parser.add_argument("--tags", help="Default tags for new pages (comma separated)")
    parser.add_argument("--scope", action="append", help="Lorebook scope tag (repeatable)")
    parser.add_argument("--model", help="Override the Gemini model name")
    parser.add_argument("--apply", action="store_true", help="Write planned pages to disk")
    parser.add_argument("--json", action="store_true", help="Print the full plan as JSON")
    parser.add_argument("--no-diff", action="store_true", help="Skip diff previews")
    return parser.parse_args(argv)


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(parse_args())))
