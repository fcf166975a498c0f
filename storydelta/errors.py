"""Exception hierarchy for story delta planning.

Fatal errors (preconditions, path exhaustion) propagate to the caller.
``OperationParseError`` is chunk-local: the planner turns it into a warning
and moves on to the next chunk.
"""


class StoryDeltaError(Exception):
    """Base class for every planner error."""


class PlanPreconditionError(StoryDeltaError):
    """Inputs rejected before any chunk is sent to the model."""


class OperationParseError(StoryDeltaError):
    """Model output could not be turned into an operations list."""


class PathAllocationError(StoryDeltaError):
    """No free file path could be found for a new page."""

    def __init__(self, stem: str):
        super().__init__(f"Unable to allocate file path for {stem}.")
        self.stem = stem
