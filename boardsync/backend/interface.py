"""
boardsync Backend Interface

Defines the request/response contract the coordinator and the cache use to
reach the backing store. Implementations raise BackendError subclasses on
failure; creates echo the client-generated `client_key`.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from boardsync.models.domain import Board, Lane, WorkflowState


class BoardBackend(ABC):
    """
    Abstract base class for board stores.

    All methods are coroutines so in-process and remote stores share one
    contract.

    Example implementation:
        class MyBackend(BoardBackend):
            async def get_board(self, board_id: str) -> Optional[Board]:
                ...
    """

    # Reads

    @abstractmethod
    async def get_board(self, board_id: str) -> Optional[Board]:
        """Return the board with its ordered lanes, or None if it does not exist."""

    @abstractmethod
    async def list_boards(self, project_id: str) -> List[Board]:
        """Return the project's boards with ordered lanes."""

    @abstractmethod
    async def list_states(self, project_id: str) -> List[WorkflowState]:
        """Return the project's workflow states ordered by position."""

    # Boards

    @abstractmethod
    async def create_board(
        self,
        *,
        project_id: str,
        name: str,
        board_type: str,
        is_default: bool = False,
        sprint_id: Optional[str] = None,
        client_key: Optional[str] = None,
    ) -> Board:
        """Create a board and return the canonical record."""

    @abstractmethod
    async def update_board(self, board_id: str, **patch: Any) -> Board:
        """Patch a board and return the canonical record."""

    @abstractmethod
    async def delete_board(self, board_id: str) -> Dict[str, Any]:
        """Delete a board and its lanes."""

    # Lanes

    @abstractmethod
    async def create_lane(
        self,
        *,
        board_id: str,
        name: str,
        position: int,
        mapped_states: Sequence[str] = (),
        wip_limit: Optional[int] = None,
        client_key: Optional[str] = None,
    ) -> Lane:
        """Create a lane and return the canonical record."""

    @abstractmethod
    async def update_lane(self, lane_id: str, **patch: Any) -> Lane:
        """Patch a lane and return the canonical record."""

    @abstractmethod
    async def delete_lane(self, lane_id: str) -> Dict[str, Any]:
        """Delete a lane; the store renumbers the remaining ones."""

    @abstractmethod
    async def reorder_lanes(self, lanes: Sequence[Tuple[str, int]]) -> Dict[str, Any]:
        """Apply (lane_id, position) pairs; the store keeps positions dense."""

    async def aclose(self) -> None:
        """Release transport resources, if any."""
