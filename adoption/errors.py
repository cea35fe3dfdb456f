"""Domain exceptions raised by the adoption engine."""

from __future__ import annotations


class AdoptionError(Exception):
    """Base class for all adoption-engine errors."""


class NotFoundError(AdoptionError):
    """A profile, tool or recommendation entry does not exist."""


class InvalidTransitionError(AdoptionError):
    """A recommendation status change is not allowed from its current status.

    The stored entry keeps its original status when this is raised.
    """

    def __init__(self, tool_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move recommendation for tool {tool_id!r} from {current!r} to {requested!r}"
        )
        self.tool_id = tool_id
        self.current = current
        self.requested = requested


class ConcurrencyConflictError(AdoptionError):
    """A compare-and-set write lost the race against another writer."""


class AdvisoryFailureError(AdoptionError):
    """The optional text-generation service failed or timed out."""
