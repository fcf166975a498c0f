"""Which story notes feed a delta run: the selected note, its chapter, or the whole story thread."""

from __future__ import annotations

import enum
from typing import List, Sequence


class StorySourceMode(str, enum.Enum):
    NOTE = "note"
    CHAPTER = "chapter"
    STORY = "story"


def resolve_story_delta_source_paths(
    mode: StorySourceMode,
    selected_path: str,
    ordered_paths: Sequence[str] = (),
    current_index: int = 0,
) -> List[str]:
    """
    Resolve the note paths to read as story markdown.

    Args:
        mode: ``note`` uses the selected note only; ``chapter`` the thread entry
              at ``current_index``; ``story`` every note of the thread in order
        selected_path: Note the user invoked the update from
        ordered_paths: Story thread notes in reading order (empty when unresolved)
        current_index: Position of the selected note inside ``ordered_paths``
    """
    selected = selected_path.strip()
    if not selected:
        return []

    mode = StorySourceMode(mode)
    if mode is StorySourceMode.NOTE:
        return [selected]

    if not ordered_paths:
        return []

    if mode is StorySourceMode.CHAPTER:
        if 0 <= current_index < len(ordered_paths) and ordered_paths[current_index]:
            return [ordered_paths[current_index]]
        return []

    return [path for path in ordered_paths if path]
