import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

# Ensure repository root is on sys.path so in-tree packages import cleanly.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from boardsync.backend.interface import BoardBackend  # noqa: E402
from boardsync.backend.local import LocalBoardBackend  # noqa: E402
from boardsync.config import Config  # noqa: E402
from boardsync.db.database import SQLiteDatabase  # noqa: E402
from boardsync.services.coordinator import build_coordinator  # noqa: E402
from boardsync.services.events import EventBus, Notification  # noqa: E402


class GatedBackend(BoardBackend):
    """
    Wraps a backend so tests can record, hold and fail calls.

    `hold(method)` must be called from inside the running event loop; the
    returned event releases every call to that method.
    """

    def __init__(self, inner: BoardBackend) -> None:
        self.inner = inner
        self.calls: List[Tuple[str, tuple, dict]] = []
        self.failures: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def fail(self, method: str, error: Exception) -> None:
        self.failures[method] = error

    def heal(self, method: Optional[str] = None) -> None:
        if method is None:
            self.failures.clear()
        else:
            self.failures.pop(method, None)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def calls_to(self, method: str) -> List[Tuple[tuple, dict]]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == method]

    async def _invoke(self, method: str, *args: Any, **kwargs: Any) -> Any:
        self.calls.append((method, args, kwargs))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        error = self.failures.get(method)
        if error is not None:
            raise error
        return await getattr(self.inner, method)(*args, **kwargs)

    async def get_board(self, board_id):
        return await self._invoke("get_board", board_id)

    async def list_boards(self, project_id):
        return await self._invoke("list_boards", project_id)

    async def list_states(self, project_id):
        return await self._invoke("list_states", project_id)

    async def create_board(self, **kwargs):
        return await self._invoke("create_board", **kwargs)

    async def update_board(self, board_id, **patch):
        return await self._invoke("update_board", board_id, **patch)

    async def delete_board(self, board_id):
        return await self._invoke("delete_board", board_id)

    async def create_lane(self, **kwargs):
        return await self._invoke("create_lane", **kwargs)

    async def update_lane(self, lane_id, **patch):
        return await self._invoke("update_lane", lane_id, **patch)

    async def delete_lane(self, lane_id):
        return await self._invoke("delete_lane", lane_id)

    async def reorder_lanes(self, lanes: Sequence[Tuple[str, int]]):
        return await self._invoke("reorder_lanes", lanes)


async def settle(rounds: int = 10) -> None:
    """Let scheduled coroutines run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def seed_project(db: SQLiteDatabase) -> SimpleNamespace:
    """A project with a sprint and three workflow states."""
    project = db.create_project("Demo")
    sprint = db.create_sprint(project.id, "Sprint 1")
    todo = db.create_state(project.id, "To Do", category="TODO", is_initial=True)
    doing = db.create_state(project.id, "In Progress", category="IN_PROGRESS")
    done = db.create_state(project.id, "Done", category="DONE", is_final=True)
    return SimpleNamespace(project=project, sprint=sprint, states=[todo, doing, done])


@pytest.fixture
def db(tmp_path: Path) -> SQLiteDatabase:
    database = SQLiteDatabase(tmp_path / "boards.sqlite")
    database.init_schema()
    return database


@pytest.fixture
def seeded(db: SQLiteDatabase) -> SimpleNamespace:
    return seed_project(db)


@pytest.fixture
def board_abc(db: SQLiteDatabase, seeded: SimpleNamespace):
    """A kanban board with lanes A, B, C at positions 0, 1, 2."""
    board = db.create_board(seeded.project.id, "Main", is_default=True)
    for name in ("A", "B", "C"):
        db.create_lane(board.id, name)
    return db.get_board(board.id)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(db_path=tmp_path / "boards.sqlite")


@pytest.fixture
def backend(db: SQLiteDatabase) -> GatedBackend:
    return GatedBackend(LocalBoardBackend(db))


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def notifications(bus: EventBus) -> List[Notification]:
    received: List[Notification] = []
    bus.add_handler(Notification, received.append)
    return received


@pytest.fixture
def coordinator(config: Config, backend: GatedBackend, bus: EventBus):
    return build_coordinator(config, backend, bus)
