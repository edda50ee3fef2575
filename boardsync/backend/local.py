"""
boardsync Local Backend

In-process implementation of the backend contract over the SQLite
repository. Used by the CLI when no API URL is configured, and by tests.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from boardsync.backend.interface import BoardBackend
from boardsync.db.database import Database
from boardsync.errors import BackendRejectedError, EntityNotFoundError
from boardsync.logging import get_logger
from boardsync.models.domain import Board, Lane, WorkflowState

logger = get_logger(__name__)


@contextmanager
def _store_errors(operation: str) -> Generator[None, None, None]:
    """Translate repository exceptions into backend errors."""
    try:
        yield
    except KeyError as exc:
        message = exc.args[0] if exc.args else str(exc)
        raise EntityNotFoundError(str(message), status_code=404, metadata={"operation": operation}) from exc
    except ValueError as exc:
        raise BackendRejectedError(str(exc), status_code=409, metadata={"operation": operation}) from exc


class LocalBoardBackend(BoardBackend):
    """Backend that calls the repository directly."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def get_board(self, board_id: str) -> Optional[Board]:
        try:
            return self.db.get_board(board_id)
        except KeyError:
            return None

    async def list_boards(self, project_id: str) -> List[Board]:
        return self.db.list_boards(project_id)

    async def list_states(self, project_id: str) -> List[WorkflowState]:
        return self.db.list_states(project_id)

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
        with _store_errors("create_board"):
            return self.db.create_board(
                project_id=project_id,
                name=name,
                board_type=board_type,
                is_default=is_default,
                sprint_id=sprint_id,
                client_key=client_key,
            )

    async def update_board(self, board_id: str, **patch: Any) -> Board:
        with _store_errors("update_board"):
            return self.db.update_board(board_id, **patch)

    async def delete_board(self, board_id: str) -> Dict[str, Any]:
        with _store_errors("delete_board"):
            self.db.delete_board(board_id)
        return {"success": True}

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
        with _store_errors("create_lane"):
            return self.db.create_lane(
                board_id=board_id,
                name=name,
                position=position,
                mapped_states=list(mapped_states),
                wip_limit=wip_limit,
                client_key=client_key,
            )

    async def update_lane(self, lane_id: str, **patch: Any) -> Lane:
        with _store_errors("update_lane"):
            return self.db.update_lane(lane_id, **patch)

    async def delete_lane(self, lane_id: str) -> Dict[str, Any]:
        with _store_errors("delete_lane"):
            self.db.delete_lane(lane_id)
        return {"success": True}

    async def reorder_lanes(self, lanes: Sequence[Tuple[str, int]]) -> Dict[str, Any]:
        with _store_errors("reorder_lanes"):
            self.db.reorder_lanes(list(lanes))
        return {"success": True}
