"""
boardsync Database Service

SQLite persistence for projects, sprints, workflow states, boards and lanes.
This is the backing store the optimistic coordinator ultimately talks to:
it owns canonical ids, default-board exclusivity and dense lane positions.

Not-found lookups raise KeyError; constraint violations raise ValueError.
"""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from boardsync.logging import get_logger
from boardsync.models.domain import (
    BOARD_PATCH_FIELDS,
    LANE_PATCH_FIELDS,
    Board,
    BoardType,
    Lane,
    Project,
    Sprint,
    StateCategory,
    WorkflowState,
)

logger = get_logger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class SQLiteDatabase:
    """
    SQLite-backed persistence for boardsync state.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(query, tuple(params)).fetchone()
        finally:
            conn.close()

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(query, tuple(params)).fetchall()
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema."""
        from boardsync.db.schema import SCHEMA_SQLITE

        with self._transaction() as conn:
            conn.executescript(SCHEMA_SQLITE)

    # Helper methods for JSON and timestamp parsing
    @staticmethod
    def _parse_json(value: Any) -> Optional[Union[dict, list]]:
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            return value
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _dump_json(value: Any) -> Optional[str]:
        if value is None:
            return None
        return json.dumps(value)

    @staticmethod
    def _coerce_ts(value: Any) -> str:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.isoformat()
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return ""
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return text
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.isoformat()
        return str(value) if value else ""

    # Row to model converters
    def _row_to_project(self, row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            created_at=self._coerce_ts(row["created_at"]),
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    def _row_to_sprint(self, row: sqlite3.Row) -> Sprint:
        return Sprint(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            status=row["status"],
            created_at=self._coerce_ts(row["created_at"]),
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    def _row_to_state(self, row: sqlite3.Row) -> WorkflowState:
        return WorkflowState(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            category=row["category"],
            position=row["position"],
            color=row["color"],
            wip_limit=row["wip_limit"],
            is_initial=bool(row["is_initial"]),
            is_final=bool(row["is_final"]),
        )

    def _row_to_lane(self, row: sqlite3.Row) -> Lane:
        return Lane(
            id=row["id"],
            board_id=row["board_id"],
            name=row["name"],
            position=row["position"],
            mapped_states=list(self._parse_json(row["mapped_states"]) or []),
            wip_limit=row["wip_limit"],
            is_collapsed=bool(row["is_collapsed"]),
            client_key=row["client_key"],
            created_at=self._coerce_ts(row["created_at"]),
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    def _row_to_board(self, row: sqlite3.Row, lanes: List[Lane]) -> Board:
        return Board(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            board_type=row["board_type"],
            is_default=bool(row["is_default"]),
            sprint_id=row["sprint_id"],
            filter_query=self._parse_json(row["filter_query"]),
            settings=self._parse_json(row["settings"]),
            client_key=row["client_key"],
            lanes=lanes,
            created_at=self._coerce_ts(row["created_at"]),
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    # Constraint helpers (run inside a transaction)
    @staticmethod
    def _require_name(name: Optional[str], what: str) -> str:
        if name is None or not str(name).strip():
            raise ValueError(f"{what} name is required")
        return str(name).strip()

    @staticmethod
    def _require_wip_limit(wip_limit: Optional[int]) -> Optional[int]:
        if wip_limit is None:
            return None
        if isinstance(wip_limit, bool) or not isinstance(wip_limit, int) or wip_limit < 1:
            raise ValueError(f"WIP limit must be a positive integer, got {wip_limit!r}")
        return wip_limit

    @staticmethod
    def _require_project(conn: sqlite3.Connection, project_id: str) -> None:
        if conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone() is None:
            raise KeyError(f"Project {project_id} not found")

    @staticmethod
    def _check_sprint(conn: sqlite3.Connection, project_id: str, sprint_id: Optional[str]) -> None:
        if sprint_id is None:
            return
        row = conn.execute("SELECT project_id FROM sprints WHERE id = ?", (sprint_id,)).fetchone()
        if row is None:
            raise ValueError(f"Sprint {sprint_id} does not exist")
        if row["project_id"] != project_id:
            raise ValueError(f"Sprint {sprint_id} belongs to another project")

    @staticmethod
    def _check_states(conn: sqlite3.Connection, project_id: str, state_ids: Sequence[str]) -> List[str]:
        ids = list(state_ids or [])
        if len(set(ids)) != len(ids):
            raise ValueError("Mapped states contain duplicates")
        if not ids:
            return ids
        placeholders = ", ".join("?" for _ in ids)
        rows = conn.execute(
            f"SELECT id FROM workflow_states WHERE project_id = ? AND id IN ({placeholders})",
            (project_id, *ids),
        ).fetchall()
        known = {row["id"] for row in rows}
        unknown = [state_id for state_id in ids if state_id not in known]
        if unknown:
            raise ValueError(f"Unknown workflow states for project {project_id}: {', '.join(unknown)}")
        return ids

    @staticmethod
    def _check_lane_name(
        conn: sqlite3.Connection,
        board_id: str,
        name: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        row = conn.execute(
            "SELECT id FROM board_lanes WHERE board_id = ? AND lower(name) = lower(?) AND id != ?",
            (board_id, name, exclude_id or ""),
        ).fetchone()
        if row is not None:
            raise ValueError(f"A lane named {name!r} already exists on this board")

    @staticmethod
    def _board_project(conn: sqlite3.Connection, board_id: str) -> str:
        row = conn.execute("SELECT project_id FROM boards WHERE id = ?", (board_id,)).fetchone()
        if row is None:
            raise KeyError(f"Board {board_id} not found")
        return row["project_id"]

    @staticmethod
    def _unset_defaults(conn: sqlite3.Connection, project_id: str, keep_id: Optional[str] = None) -> None:
        conn.execute(
            "UPDATE boards SET is_default = 0, updated_at = CURRENT_TIMESTAMP "
            "WHERE project_id = ? AND is_default = 1 AND id != ?",
            (project_id, keep_id or ""),
        )

    @staticmethod
    def _find_by_client_key(
        conn: sqlite3.Connection,
        table: str,
        scope_column: str,
        scope_id: str,
        client_key: Optional[str],
    ) -> Optional[str]:
        if not client_key:
            return None
        row = conn.execute(
            f"SELECT id FROM {table} WHERE {scope_column} = ? AND client_key = ?",
            (scope_id, client_key),
        ).fetchone()
        return row["id"] if row is not None else None

    @staticmethod
    def _renumber_lanes(conn: sqlite3.Connection, board_id: str) -> None:
        rows = conn.execute(
            "SELECT id, position FROM board_lanes WHERE board_id = ? ORDER BY position, rowid",
            (board_id,),
        ).fetchall()
        for index, row in enumerate(rows):
            if row["position"] != index:
                conn.execute("UPDATE board_lanes SET position = ? WHERE id = ?", (index, row["id"]))

    # Projects
    def create_project(self, name: str, project_id: Optional[str] = None) -> Project:
        project_id = project_id or _new_id()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO projects (id, name) VALUES (?, ?)",
                (project_id, self._require_name(name, "Project")),
            )
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> Project:
        row = self._fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
        if row is None:
            raise KeyError(f"Project {project_id} not found")
        return self._row_to_project(row)

    def list_projects(self) -> List[Project]:
        rows = self._fetchall("SELECT * FROM projects ORDER BY created_at, rowid")
        return [self._row_to_project(row) for row in rows]

    # Sprints
    def create_sprint(self, project_id: str, name: str, status: str = "planned") -> Sprint:
        sprint_id = _new_id()
        with self._transaction() as conn:
            self._require_project(conn, project_id)
            conn.execute(
                "INSERT INTO sprints (id, project_id, name, status) VALUES (?, ?, ?, ?)",
                (sprint_id, project_id, self._require_name(name, "Sprint"), status),
            )
        return self.get_sprint(sprint_id)

    def get_sprint(self, sprint_id: str) -> Sprint:
        row = self._fetchone("SELECT * FROM sprints WHERE id = ?", (sprint_id,))
        if row is None:
            raise KeyError(f"Sprint {sprint_id} not found")
        return self._row_to_sprint(row)

    def list_sprints(self, project_id: str) -> List[Sprint]:
        rows = self._fetchall(
            "SELECT * FROM sprints WHERE project_id = ? ORDER BY created_at, rowid",
            (project_id,),
        )
        return [self._row_to_sprint(row) for row in rows]

    # Workflow states
    def create_state(
        self,
        project_id: str,
        name: str,
        category: str = StateCategory.TODO,
        position: Optional[int] = None,
        color: Optional[str] = None,
        wip_limit: Optional[int] = None,
        is_initial: bool = False,
        is_final: bool = False,
    ) -> WorkflowState:
        if category not in StateCategory.ALL:
            raise ValueError(f"Unknown state category {category!r}")
        state_id = _new_id()
        with self._transaction() as conn:
            self._require_project(conn, project_id)
            if position is None:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM workflow_states WHERE project_id = ?",
                    (project_id,),
                ).fetchone()
                position = row["n"]
            try:
                conn.execute(
                    """
                    INSERT INTO workflow_states (
                        id, project_id, name, category, position,
                        color, wip_limit, is_initial, is_final
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        state_id, project_id, self._require_name(name, "State"), category, position,
                        color, self._require_wip_limit(wip_limit), int(is_initial), int(is_final),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"A state named {name!r} already exists in this project") from exc
        row = self._fetchone("SELECT * FROM workflow_states WHERE id = ?", (state_id,))
        return self._row_to_state(row)

    def list_states(self, project_id: str) -> List[WorkflowState]:
        rows = self._fetchall(
            "SELECT * FROM workflow_states WHERE project_id = ? ORDER BY position, rowid",
            (project_id,),
        )
        return [self._row_to_state(row) for row in rows]

    # Boards
    def create_board(
        self,
        project_id: str,
        name: str,
        board_type: str = BoardType.KANBAN,
        is_default: bool = False,
        sprint_id: Optional[str] = None,
        filter_query: Optional[Dict[str, Any]] = None,
        settings: Optional[Dict[str, Any]] = None,
        client_key: Optional[str] = None,
    ) -> Board:
        if board_type not in BoardType.ALL:
            raise ValueError(f"Unknown board type {board_type!r}")
        with self._transaction() as conn:
            self._require_project(conn, project_id)
            board_id = self._find_by_client_key(conn, "boards", "project_id", project_id, client_key)
            if board_id is not None:
                logger.info("Board create replayed", extra={"board_id": board_id, "client_key": client_key})
            else:
                board_id = _new_id()
                self._check_sprint(conn, project_id, sprint_id)
                if is_default:
                    self._unset_defaults(conn, project_id)
                conn.execute(
                    """
                    INSERT INTO boards (
                        id, project_id, name, board_type, is_default,
                        sprint_id, filter_query, settings, client_key
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        board_id, project_id, self._require_name(name, "Board"), board_type,
                        int(bool(is_default)), sprint_id, self._dump_json(filter_query),
                        self._dump_json(settings), client_key,
                    ),
                )
        return self.get_board(board_id)

    def get_board(self, board_id: str) -> Board:
        row = self._fetchone("SELECT * FROM boards WHERE id = ?", (board_id,))
        if row is None:
            raise KeyError(f"Board {board_id} not found")
        return self._row_to_board(row, self.list_lanes(board_id))

    def list_boards(self, project_id: str) -> List[Board]:
        rows = self._fetchall(
            "SELECT * FROM boards WHERE project_id = ? ORDER BY created_at, rowid",
            (project_id,),
        )
        return [self._row_to_board(row, self.list_lanes(row["id"])) for row in rows]

    def update_board(self, board_id: str, **kwargs: Any) -> Board:
        updates = ["updated_at = CURRENT_TIMESTAMP"]
        params: List[Any] = []

        with self._transaction() as conn:
            project_id = self._board_project(conn, board_id)
            for key, value in kwargs.items():
                if key not in BOARD_PATCH_FIELDS:
                    continue
                if key == "name":
                    value = self._require_name(value, "Board")
                elif key == "board_type" and value not in BoardType.ALL:
                    raise ValueError(f"Unknown board type {value!r}")
                elif key == "sprint_id":
                    self._check_sprint(conn, project_id, value)
                elif key == "is_default":
                    value = int(bool(value))
                    if value:
                        self._unset_defaults(conn, project_id, keep_id=board_id)
                elif key in ("filter_query", "settings"):
                    value = self._dump_json(value)
                updates.append(f"{key} = ?")
                params.append(value)

            if len(updates) > 1:
                params.append(board_id)
                conn.execute(f"UPDATE boards SET {', '.join(updates)} WHERE id = ?", tuple(params))
        return self.get_board(board_id)

    def delete_board(self, board_id: str) -> None:
        with self._transaction() as conn:
            self._board_project(conn, board_id)
            conn.execute("DELETE FROM board_lanes WHERE board_id = ?", (board_id,))
            conn.execute("DELETE FROM boards WHERE id = ?", (board_id,))

    # Lanes
    def create_lane(
        self,
        board_id: str,
        name: str,
        position: Optional[int] = None,
        mapped_states: Optional[Sequence[str]] = None,
        wip_limit: Optional[int] = None,
        is_collapsed: bool = False,
        client_key: Optional[str] = None,
    ) -> Lane:
        """
        Insert a lane at a clamped position, shifting later lanes down.

        A repeated `client_key` on the same board returns the existing lane.
        """
        with self._transaction() as conn:
            project_id = self._board_project(conn, board_id)
            lane_id = self._find_by_client_key(conn, "board_lanes", "board_id", board_id, client_key)
            if lane_id is not None:
                logger.info(
                    "Lane create replayed",
                    extra={"lane_id": lane_id, "board_id": board_id, "client_key": client_key},
                )
            else:
                lane_id = _new_id()
                name = self._require_name(name, "Lane")
                self._check_lane_name(conn, board_id, name)
                states = self._check_states(conn, project_id, mapped_states or [])
                count = conn.execute(
                    "SELECT COUNT(*) AS n FROM board_lanes WHERE board_id = ?", (board_id,)
                ).fetchone()["n"]
                target = count if position is None else max(0, min(int(position), count))
                conn.execute(
                    "UPDATE board_lanes SET position = position + 1 WHERE board_id = ? AND position >= ?",
                    (board_id, target),
                )
                conn.execute(
                    """
                    INSERT INTO board_lanes (
                        id, board_id, name, position, mapped_states,
                        wip_limit, is_collapsed, client_key
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        lane_id, board_id, name, target, json.dumps(states),
                        self._require_wip_limit(wip_limit), int(bool(is_collapsed)), client_key,
                    ),
                )
        return self.get_lane(lane_id)

    def get_lane(self, lane_id: str) -> Lane:
        row = self._fetchone("SELECT * FROM board_lanes WHERE id = ?", (lane_id,))
        if row is None:
            raise KeyError(f"Lane {lane_id} not found")
        return self._row_to_lane(row)

    def list_lanes(self, board_id: str) -> List[Lane]:
        rows = self._fetchall(
            "SELECT * FROM board_lanes WHERE board_id = ? ORDER BY position, rowid",
            (board_id,),
        )
        return [self._row_to_lane(row) for row in rows]

    def update_lane(self, lane_id: str, **kwargs: Any) -> Lane:
        updates = ["updated_at = CURRENT_TIMESTAMP"]
        params: List[Any] = []

        with self._transaction() as conn:
            row = conn.execute("SELECT board_id FROM board_lanes WHERE id = ?", (lane_id,)).fetchone()
            if row is None:
                raise KeyError(f"Lane {lane_id} not found")
            board_id = row["board_id"]
            for key, value in kwargs.items():
                if key not in LANE_PATCH_FIELDS:
                    continue
                if key == "name":
                    value = self._require_name(value, "Lane")
                    self._check_lane_name(conn, board_id, value, exclude_id=lane_id)
                elif key == "mapped_states":
                    value = json.dumps(
                        self._check_states(conn, self._board_project(conn, board_id), value or [])
                    )
                elif key == "wip_limit":
                    value = self._require_wip_limit(value)
                elif key == "is_collapsed":
                    value = int(bool(value))
                updates.append(f"{key} = ?")
                params.append(value)

            if len(updates) > 1:
                params.append(lane_id)
                conn.execute(f"UPDATE board_lanes SET {', '.join(updates)} WHERE id = ?", tuple(params))
        return self.get_lane(lane_id)

    def delete_lane(self, lane_id: str) -> None:
        with self._transaction() as conn:
            row = conn.execute("SELECT board_id FROM board_lanes WHERE id = ?", (lane_id,)).fetchone()
            if row is None:
                raise KeyError(f"Lane {lane_id} not found")
            conn.execute("DELETE FROM board_lanes WHERE id = ?", (lane_id,))
            self._renumber_lanes(conn, row["board_id"])

    def reorder_lanes(self, lanes: Sequence[Tuple[str, int]]) -> None:
        """
        Apply requested lane positions and renumber the board densely.

        Lanes not mentioned keep their current position as their sort key,
        so a partial reorder still ends in a 0..n-1 sequence.
        """
        if not lanes:
            return
        requested: Dict[str, int] = {}
        for lane_id, position in lanes:
            if lane_id in requested:
                raise ValueError(f"Lane {lane_id} listed twice in reorder")
            requested[lane_id] = int(position)

        with self._transaction() as conn:
            board_ids = set()
            for lane_id in requested:
                row = conn.execute("SELECT board_id FROM board_lanes WHERE id = ?", (lane_id,)).fetchone()
                if row is None:
                    raise KeyError(f"Lane {lane_id} not found")
                board_ids.add(row["board_id"])
            if len(board_ids) != 1:
                raise ValueError("Reordered lanes must belong to a single board")
            board_id = board_ids.pop()

            rows = conn.execute(
                "SELECT id, position FROM board_lanes WHERE board_id = ? ORDER BY position, rowid",
                (board_id,),
            ).fetchall()
            ordered = sorted(
                rows,
                key=lambda r: (
                    requested.get(r["id"], r["position"]),
                    0 if r["id"] in requested else 1,
                    r["position"],
                ),
            )
            for index, row in enumerate(ordered):
                conn.execute(
                    "UPDATE board_lanes SET position = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (index, row["id"]),
                )


Database = SQLiteDatabase


def get_database(db_path: Optional[Path] = None) -> Database:
    """
    Factory function to create the database instance.

    Args:
        db_path: SQLite database file path (default: .boardsync.sqlite)
    """
    return SQLiteDatabase(Path(db_path) if db_path else Path(".boardsync.sqlite"))
