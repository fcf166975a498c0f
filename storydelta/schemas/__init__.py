# Story Delta Schema Definitions
from .delta_schemas import (
    CamelModel,
    UpdatePolicy,
    StoryChunk,
    # Parsed model output
    StoryDeltaOperation,
    # Planner inputs
    ExistingPage,
    StoryDeltaOptions,
    # Planner outputs
    DiffPreview,
    PlannedPage,
    PlannedChange,
    ChunkResult,
    StoryDeltaResult,
)

__all__ = [
    "CamelModel",
    "UpdatePolicy",
    "StoryChunk",
    # Parsed model output
    "StoryDeltaOperation",
    # Planner inputs
    "ExistingPage",
    "StoryDeltaOptions",
    # Planner outputs
    "DiffPreview",
    "PlannedPage",
    "PlannedChange",
    "ChunkResult",
    "StoryDeltaResult",
]
