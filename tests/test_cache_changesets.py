import copy

from boardsync.cache import (
    BoardKey,
    CacheState,
    Changeset,
    DropBoard,
    DropLane,
    ProjectBoardsKey,
    PutBoard,
    PutLane,
    SetLaneOrder,
    SetProjectBoards,
    SetSyncState,
    layout_lanes,
)
from boardsync.models.domain import Board, Lane, SyncState


def _state() -> CacheState:
    state = CacheState()
    state.boards["b1"] = Board(id="b1", project_id="p1", name="Main")
    for index, name in enumerate("ABC"):
        lane_id = f"l{name}"
        state.lanes[lane_id] = Lane(id=lane_id, board_id="b1", name=name, position=index)
    state.lane_order["b1"] = ["lA", "lB", "lC"]
    state.project_boards["p1"] = ["b1"]
    state.sync["b1"] = SyncState.CONFIRMED
    return state


def test_changeset_inverse_restores_state() -> None:
    state = _state()
    before = copy.deepcopy(state)

    lanes = [state.lanes["lC"], state.lanes["lA"], state.lanes["lB"]]
    changeset = Changeset([PutLane(Lane(id="lD", board_id="b1", name="D", position=3))])
    changeset.add(*layout_lanes("b1", lanes + [Lane(id="lD", board_id="b1", name="D", position=3)]))
    changeset.add(SetSyncState("lD", SyncState.PENDING), SetProjectBoards("p1", ("b1", "b2")))
    changeset.add(PutBoard(Board(id="b1", project_id="p1", name="Renamed")))

    inverse = changeset.apply(state)
    assert state.lane_order["b1"] == ["lC", "lA", "lB", "lD"]
    assert state.boards["b1"].name == "Renamed"

    inverse.apply(state)
    assert state == before


def test_drop_ops_invert_to_puts() -> None:
    state = _state()
    before = copy.deepcopy(state)

    inverse = Changeset([DropLane("lB"), SetLaneOrder("b1", None), DropBoard("b1")]).apply(state)
    assert "lB" not in state.lanes
    assert "b1" not in state.boards
    assert "b1" not in state.lane_order

    inverse.apply(state)
    assert state == before


def test_dropping_missing_entries_is_a_noop() -> None:
    state = _state()
    inverse = Changeset([DropLane("nope"), DropBoard("nope")]).apply(state)
    assert len(inverse) == 2
    assert all(len(op) == 0 for op in inverse)


def test_put_board_never_stores_lanes() -> None:
    state = CacheState()
    lane = Lane(id="l1", board_id="b1", name="A", position=0)
    board = Board(id="b1", project_id="p1", name="Main", lanes=[lane])
    PutBoard(board).apply(state)
    assert state.boards["b1"].lanes == []
    assert board.lanes == [lane]


def test_layout_lanes_only_rewrites_moved_lanes() -> None:
    state = _state()
    lanes = [state.lanes["lA"], state.lanes["lC"], state.lanes["lB"]]
    ops = layout_lanes("b1", lanes)
    moved = [op.lane.id for op in ops if isinstance(op, PutLane)]
    assert moved == ["lC", "lB"]
    assert ops[-1] == SetLaneOrder("b1", ("lA", "lC", "lB"))


def test_layout_lanes_rehomes_lanes_to_board() -> None:
    lane = Lane(id="lX", board_id="temp-1", name="X", position=0)
    ops = layout_lanes("b9", [lane])
    assert ops[0] == PutLane(Lane(id="lX", board_id="b9", name="X", position=0))


def test_affected_keys_cover_both_views() -> None:
    state = _state()
    assert DropLane("lA").affected(state) == {BoardKey("b1"), ProjectBoardsKey("p1")}
    assert SetProjectBoards("p1", ()).affected(state) == {ProjectBoardsKey("p1")}
    assert SetSyncState("unknown", SyncState.PENDING).affected(state) == set()
