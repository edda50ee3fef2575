"""
boardsync Cache Package

Normalized client cache for boards and lanes, plus the invertible
changesets every cache write is made of.
"""

from boardsync.cache.changesets import (
    CacheOp,
    CacheState,
    Changeset,
    DropBoard,
    DropLane,
    PutBoard,
    PutLane,
    SetLaneOrder,
    SetProjectBoards,
    SetSyncState,
    layout_lanes,
)
from boardsync.cache.keys import BoardKey, CacheKey, ProjectBoardsKey
from boardsync.cache.store import BoardCache, BoardLoader

__all__ = [
    # Store
    "BoardCache",
    "BoardLoader",
    "BoardKey",
    "ProjectBoardsKey",
    "CacheKey",
    # Changesets
    "CacheOp",
    "CacheState",
    "Changeset",
    "PutBoard",
    "DropBoard",
    "PutLane",
    "DropLane",
    "SetLaneOrder",
    "SetProjectBoards",
    "SetSyncState",
    "layout_lanes",
]
