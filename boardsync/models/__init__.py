"""
boardsync Models

Typed domain objects shared by storage, backends, cache and services.
"""

from boardsync.models.domain import (
    # Status Constants
    BoardType,
    StateCategory,
    SyncState,
    LANE_PATCH_FIELDS,
    BOARD_PATCH_FIELDS,
    # Anchors
    Project,
    Sprint,
    WorkflowState,
    # Core Models
    Board,
    Lane,
)

__all__ = [
    "BoardType",
    "StateCategory",
    "SyncState",
    "LANE_PATCH_FIELDS",
    "BOARD_PATCH_FIELDS",
    "Project",
    "Sprint",
    "WorkflowState",
    "Board",
    "Lane",
]
