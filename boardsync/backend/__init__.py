"""
boardsync Backends

Implementations of the board store contract the coordinator dispatches to.
"""

from boardsync.backend.http import HttpBoardBackend
from boardsync.backend.interface import BoardBackend
from boardsync.backend.local import LocalBoardBackend

__all__ = [
    "BoardBackend",
    "HttpBoardBackend",
    "LocalBoardBackend",
]
