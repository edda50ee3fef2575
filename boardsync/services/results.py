"""
boardsync Mutation Results

What every coordinator operation returns instead of raising.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from boardsync.errors import BoardSyncError


class MutationOutcome:
    """How a mutation settled."""
    CONFIRMED = "confirmed"      # the store accepted it
    LOCAL = "local"              # applied to placeholder records only
    NOOP = "noop"                # nothing to change
    REJECTED = "rejected"        # refused before the cache was touched
    ROLLED_BACK = "rolled_back"  # dispatched, failed, cache restored

    SUCCESSFUL = (CONFIRMED, LOCAL, NOOP)


@dataclass
class MutationResult:
    """
    Result of a coordinator operation.

    Attributes:
        operation: Operation name (e.g. "create_lane")
        outcome: One of MutationOutcome
        entity_id: Canonical id when confirmed, otherwise the local id
        entity: Canonical or local record after the mutation settled
        error: The error that rejected or rolled back the mutation
        mutation_id: Correlation id shared with events and logs
        details: Extra facts about the outcome (e.g. lanes that failed to save)
    """
    operation: str
    outcome: str
    entity_id: Optional[str] = None
    entity: Any = None
    error: Optional[BoardSyncError] = None
    mutation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome in MutationOutcome.SUCCESSFUL

    def raise_for_error(self) -> "MutationResult":
        """Raise the stored error if the mutation did not succeed."""
        if not self.success and self.error is not None:
            raise self.error
        return self
