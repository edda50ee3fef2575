import asyncio

import pytest

from boardsync.cache import BoardCache, BoardKey, ProjectBoardsKey
from boardsync.config import Config
from boardsync.errors import (
    BackendUnavailableError,
    ConfigError,
    EntityNotFoundError,
    TemporaryIdError,
    ValidationError,
)
from boardsync.models.domain import BoardType, SyncState
from boardsync.services.base import ServiceContext
from boardsync.services.coordinator import BoardMutationCoordinator, build_coordinator
from boardsync.services.events import EventBus
from boardsync.services.results import MutationOutcome

from conftest import settle


def _project_rows(coordinator, project_id):
    return [(board.name, board.is_default) for board in coordinator.store.get(ProjectBoardsKey(project_id))]


def test_create_board_replaces_placeholder_in_project_list(coordinator, backend, db, seeded, board_abc) -> None:
    asyncio.run(coordinator.load_project_boards(seeded.project.id))

    async def scenario():
        gate = backend.hold("create_board")
        task = asyncio.ensure_future(coordinator.create_board(seeded.project.id, "Roadmap"))
        await settle()
        listed = coordinator.store.board_ids(seeded.project.id)
        assert len(listed) == 2
        assert coordinator.is_temp_id(listed[1])
        assert coordinator.store.sync_state(listed[1]) == SyncState.PENDING
        gate.set()
        return listed[1], await task

    temp_id, result = asyncio.run(scenario())

    assert result.outcome == MutationOutcome.CONFIRMED
    assert coordinator.store.board_ids(seeded.project.id) == [board_abc.id, result.entity_id]
    assert coordinator.store.get(BoardKey(temp_id)) is None
    assert coordinator.store.sync_state(result.entity_id) == SyncState.CONFIRMED
    assert db.get_board(result.entity_id).name == "Roadmap"


def test_unsaved_lanes_are_flushed_after_board_create(coordinator, backend, db, seeded) -> None:
    async def scenario():
        gate = backend.hold("create_board")
        task = asyncio.ensure_future(coordinator.create_board(seeded.project.id, "Fresh"))
        await settle()
        temp_board = coordinator.store.project_board_rows(seeded.project.id)[0].id

        todo = await coordinator.create_lane(temp_board, "Todo", wip_limit=5)
        doing = await coordinator.create_lane(temp_board, "Doing")
        first = await coordinator.create_lane(temp_board, "Inbox", position=0)
        for local in (todo, doing, first):
            assert local.outcome == MutationOutcome.LOCAL
            assert coordinator.store.sync_state(local.entity_id) == SyncState.UNSAVED
        assert backend.calls_to("create_lane") == []

        gate.set()
        return await task

    result = asyncio.run(scenario())

    assert result.outcome == MutationOutcome.CONFIRMED
    assert len(backend.calls_to("create_lane")) == 3
    stored = db.list_lanes(result.entity_id)
    assert [(lane.name, lane.position) for lane in stored] == [("Inbox", 0), ("Todo", 1), ("Doing", 2)]
    assert stored[1].wip_limit == 5

    board = coordinator.store.get(BoardKey(result.entity_id))
    assert [lane.id for lane in board.lanes] == [lane.id for lane in stored]
    assert all(coordinator.store.sync_state(lane.id) == SyncState.CONFIRMED for lane in board.lanes)


def test_failed_lane_flush_is_reported_on_confirmed_board(coordinator, backend, db, seeded, notifications) -> None:
    async def scenario():
        gate = backend.hold("create_board")
        task = asyncio.ensure_future(coordinator.create_board(seeded.project.id, "Fresh"))
        await settle()
        temp_board = coordinator.store.project_board_rows(seeded.project.id)[0].id
        await coordinator.create_lane(temp_board, "Todo")
        await coordinator.create_lane(temp_board, "todo")
        gate.set()
        return await task

    result = asyncio.run(scenario())

    assert result.outcome == MutationOutcome.CONFIRMED
    failed = result.details["failed_lanes"]
    assert [item["name"] for item in failed] == ["todo"]
    assert [lane.name for lane in db.list_lanes(result.entity_id)] == ["Todo"]
    board = coordinator.store.get(BoardKey(result.entity_id))
    assert [(lane.name, lane.position) for lane in board.lanes] == [("Todo", 0)]
    assert notifications[-1].level == "error"
    assert notifications[-1].message.startswith("Board created, but 1 lane(s) failed to save: todo")


def test_failed_board_create_drops_orphaned_lanes(coordinator, backend, seeded, notifications) -> None:
    asyncio.run(coordinator.load_project_boards(seeded.project.id))
    before = coordinator.store.snapshot()

    async def scenario():
        gate = backend.hold("create_board")
        backend.fail("create_board", BackendUnavailableError("store offline"))
        task = asyncio.ensure_future(coordinator.create_board(seeded.project.id, "Doomed"))
        await settle()
        temp_board = coordinator.store.board_ids(seeded.project.id)[0]
        await coordinator.create_lane(temp_board, "Orphan")
        gate.set()
        return temp_board, await task

    temp_board, result = asyncio.run(scenario())

    assert result.outcome == MutationOutcome.ROLLED_BACK
    assert coordinator.store.lanes_referencing(temp_board) == []
    assert coordinator.store.snapshot() == before
    assert backend.calls_to("create_lane") == []
    assert [n.message for n in notifications if n.level == "error"] == [
        "Failed to create board: store offline"
    ]


@pytest.mark.parametrize("operation", ["delete_board", "assign_sprint"])
def test_temporary_board_guard_never_dispatches(coordinator, backend, seeded, notifications, operation) -> None:
    async def scenario():
        gate = backend.hold("create_board")
        task = asyncio.ensure_future(coordinator.create_board(seeded.project.id, "Pending"))
        await settle()
        temp_board = coordinator.store.project_board_rows(seeded.project.id)[0].id
        if operation == "delete_board":
            refused = await coordinator.delete_board(temp_board)
        else:
            refused = await coordinator.assign_sprint(temp_board, seeded.sprint.id)
        gate.set()
        await task
        return refused

    refused = asyncio.run(scenario())

    assert refused.outcome == MutationOutcome.REJECTED
    assert isinstance(refused.error, TemporaryIdError)
    assert backend.calls_to("delete_board") == []
    assert backend.calls_to("update_board") == []
    assert notifications[0].message == "Please wait for board creation to complete"


def test_edits_to_pending_board_are_sent_after_create(coordinator, backend, db, seeded) -> None:
    async def scenario():
        gate = backend.hold("create_board")
        task = asyncio.ensure_future(coordinator.create_board(seeded.project.id, "Draft"))
        await settle()
        temp_board = coordinator.store.project_board_rows(seeded.project.id)[0].id
        local = await coordinator.update_board(temp_board, name="Sprint board", board_type=BoardType.SCRUM)
        assert local.outcome == MutationOutcome.LOCAL
        gate.set()
        return await task

    result = asyncio.run(scenario())

    assert result.outcome == MutationOutcome.CONFIRMED
    (args, patch), = backend.calls_to("update_board")
    assert patch == {"name": "Sprint board", "board_type": BoardType.SCRUM}
    stored = db.get_board(result.entity_id)
    assert (stored.name, stored.board_type) == ("Sprint board", BoardType.SCRUM)
    assert coordinator.store.get(BoardKey(result.entity_id)).name == "Sprint board"


def test_default_board_is_exclusive_in_cache_and_store(coordinator, db, seeded, board_abc) -> None:
    asyncio.run(coordinator.load_project_boards(seeded.project.id))

    result = asyncio.run(coordinator.create_board(seeded.project.id, "New default", is_default=True))

    assert result.outcome == MutationOutcome.CONFIRMED
    assert _project_rows(coordinator, seeded.project.id) == [("Main", False), ("New default", True)]
    assert [b.name for b in db.list_boards(seeded.project.id) if b.is_default] == ["New default"]

    back = asyncio.run(coordinator.update_board(board_abc.id, is_default=True))
    assert back.outcome == MutationOutcome.CONFIRMED
    assert _project_rows(coordinator, seeded.project.id) == [("Main", True), ("New default", False)]


def test_failed_board_update_restores_snapshot(coordinator, backend, seeded, board_abc, notifications) -> None:
    asyncio.run(coordinator.load_project_boards(seeded.project.id))
    other = asyncio.run(coordinator.create_board(seeded.project.id, "Other"))
    notifications.clear()
    before = coordinator.store.snapshot()
    backend.fail("update_board", BackendUnavailableError("gateway timeout"))

    result = asyncio.run(coordinator.update_board(other.entity_id, name="Renamed", is_default=True))

    assert result.outcome == MutationOutcome.ROLLED_BACK
    assert coordinator.store.snapshot() == before
    assert [n.message for n in notifications] == ["Failed to update board: gateway timeout"]


def test_assign_sprint_on_persisted_board(coordinator, db, seeded, board_abc) -> None:
    asyncio.run(coordinator.load_board(board_abc.id))

    moved = asyncio.run(coordinator.assign_sprint(board_abc.id, seeded.sprint.id))
    assert moved.outcome == MutationOutcome.CONFIRMED
    assert db.get_board(board_abc.id).sprint_id == seeded.sprint.id
    assert coordinator.store.get(BoardKey(board_abc.id)).sprint_id == seeded.sprint.id

    foreign = db.create_sprint(db.create_project("Other").id, "Elsewhere")
    refused = asyncio.run(coordinator.assign_sprint(board_abc.id, foreign.id))
    assert refused.outcome == MutationOutcome.ROLLED_BACK
    assert coordinator.store.get(BoardKey(board_abc.id)).sprint_id == seeded.sprint.id


def test_delete_board_removes_board_and_lanes(coordinator, db, seeded, board_abc) -> None:
    asyncio.run(coordinator.load_project_boards(seeded.project.id))
    lane_ids = [lane.id for lane in board_abc.lanes]

    result = asyncio.run(coordinator.delete_board(board_abc.id))

    assert result.outcome == MutationOutcome.CONFIRMED
    assert coordinator.store.get(BoardKey(board_abc.id)) is None
    assert coordinator.store.board_ids(seeded.project.id) == []
    assert coordinator.store.sync_state(board_abc.id) == SyncState.REMOVED
    assert all(coordinator.store.sync_state(lane_id) == SyncState.REMOVED for lane_id in lane_ids)
    assert db.list_boards(seeded.project.id) == []


def test_failed_board_delete_restores_snapshot(coordinator, backend, seeded, board_abc) -> None:
    asyncio.run(coordinator.load_project_boards(seeded.project.id))
    before = coordinator.store.snapshot()
    backend.fail("delete_board", BackendUnavailableError("offline"))

    result = asyncio.run(coordinator.delete_board(board_abc.id))

    assert result.outcome == MutationOutcome.ROLLED_BACK
    assert coordinator.store.snapshot() == before


def test_board_validation(coordinator, backend, seeded) -> None:
    blank = asyncio.run(coordinator.create_board(seeded.project.id, ""))
    timeline = asyncio.run(coordinator.create_board(seeded.project.id, "T", board_type="timeline"))
    for result in (blank, timeline):
        assert result.outcome == MutationOutcome.REJECTED
        assert isinstance(result.error, ValidationError)
    assert backend.calls_to("create_board") == []


def test_load_missing_board_is_rejected(coordinator, notifications) -> None:
    result = asyncio.run(coordinator.load_board("no-such-board"))
    assert result.outcome == MutationOutcome.REJECTED
    assert isinstance(result.error, EntityNotFoundError)
    assert notifications[0].message.startswith("Failed to load board:")


def test_success_notifications_can_be_silenced(backend, bus, notifications, seeded, board_abc) -> None:
    coordinator = build_coordinator(Config(notify_success=False), backend, bus)
    asyncio.run(coordinator.load_board(board_abc.id))

    asyncio.run(coordinator.update_board(board_abc.id, name="Quiet"))
    assert notifications == []

    failed = asyncio.run(coordinator.update_board(board_abc.id, name=" "))
    assert failed.outcome == MutationOutcome.REJECTED
    assert [n.level for n in notifications] == ["error"]


def test_cache_and_config_must_agree_on_prefix(backend) -> None:
    context = ServiceContext(config=Config(temp_id_prefix="tmp_"))
    with pytest.raises(ConfigError):
        BoardMutationCoordinator(context, backend, BoardCache(loader=backend), EventBus())
