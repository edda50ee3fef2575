"""
boardsync Cache Keys

Keys addressing the two read views of the board cache.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class BoardKey:
    """One board with its ordered lanes."""
    board_id: str


@dataclass(frozen=True)
class ProjectBoardsKey:
    """All boards of a project, each with its ordered lanes."""
    project_id: str


CacheKey = Union[BoardKey, ProjectBoardsKey]
