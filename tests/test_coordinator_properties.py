"""
Property-based tests for lane ordering under optimistic mutations.

After every create/delete/reorder/move settles, whether it was confirmed or
rolled back, the cached lane positions form a dense 0..n-1 sequence and the
cached order matches the store's order.
"""

import asyncio
import random
import tempfile
from contextlib import contextmanager
from pathlib import Path

from hypothesis import given, settings, strategies as st

from boardsync.backend.local import LocalBoardBackend
from boardsync.cache import BoardKey
from boardsync.config import Config
from boardsync.db.database import SQLiteDatabase
from boardsync.errors import BackendUnavailableError
from boardsync.services.coordinator import build_coordinator
from boardsync.services.results import MutationOutcome

from conftest import GatedBackend, seed_project


operation_strategy = st.one_of(
    st.tuples(st.just("create"), st.integers(min_value=-1, max_value=8)),
    st.tuples(st.just("delete"), st.integers(min_value=0, max_value=20)),
    st.tuples(st.just("reorder"), st.integers(min_value=0, max_value=10_000)),
    st.tuples(st.just("move"), st.integers(min_value=0, max_value=20), st.sampled_from(["up", "down"])),
)


@contextmanager
def temp_db_context():
    """Context manager to create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db = SQLiteDatabase(Path(tmpdir) / "test.db")
        db.init_schema()
        yield db


async def _run_step(coordinator, board_id, step, counter):
    kind = step[0]
    lane_ids = coordinator.store.lane_ids(board_id)
    if kind == "create":
        position = None if step[1] < 0 else step[1]
        return await coordinator.create_lane(board_id, f"Lane {counter}", position=position)
    if not lane_ids:
        return None
    if kind == "delete":
        return await coordinator.delete_lane(lane_ids[step[1] % len(lane_ids)])
    if kind == "reorder":
        shuffled = list(lane_ids)
        random.Random(step[1]).shuffle(shuffled)
        return await coordinator.reorder_lanes(board_id, shuffled)
    return await coordinator.move_lane(lane_ids[step[1] % len(lane_ids)], step[2])


@settings(max_examples=40, deadline=None)
@given(
    initial=st.integers(min_value=0, max_value=4),
    steps=st.lists(st.tuples(operation_strategy, st.booleans()), min_size=1, max_size=12),
)
def test_positions_stay_dense_and_match_store(initial, steps):
    with temp_db_context() as db:
        seeded = seed_project(db)
        board = db.create_board(seeded.project.id, "Property board")
        for index in range(initial):
            db.create_lane(board.id, f"Seed {index}")

        backend = GatedBackend(LocalBoardBackend(db))
        coordinator = build_coordinator(Config(), backend)

        async def scenario():
            await coordinator.load_board(board.id)
            for counter, (step, fails) in enumerate(steps):
                before = coordinator.store.snapshot()
                if fails:
                    for method in ("create_lane", "delete_lane", "reorder_lanes"):
                        backend.fail(method, BackendUnavailableError("injected"))
                result = await _run_step(coordinator, board.id, step, counter)
                backend.heal()

                lanes = coordinator.store.get(BoardKey(board.id)).lanes
                assert [lane.position for lane in lanes] == list(range(len(lanes)))
                assert [lane.id for lane in lanes] == [lane.id for lane in db.list_lanes(board.id)]
                assert [lane.position for lane in db.list_lanes(board.id)] == list(range(len(lanes)))
                if result is not None and result.outcome == MutationOutcome.ROLLED_BACK:
                    assert coordinator.store.snapshot() == before

        asyncio.run(scenario())


@settings(max_examples=30, deadline=None)
@given(
    name=st.text(
        alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd", "Zs")),
        min_size=1,
        max_size=30,
    ).filter(lambda value: value.strip()),
    wip_limit=st.one_of(st.none(), st.integers(min_value=1, max_value=50)),
    state_count=st.integers(min_value=0, max_value=3),
)
def test_created_lane_reads_back_with_its_attributes(name, wip_limit, state_count):
    with temp_db_context() as db:
        seeded = seed_project(db)
        board = db.create_board(seeded.project.id, "Round trip")
        states = [state.id for state in seeded.states[:state_count]]
        coordinator = build_coordinator(Config(), LocalBoardBackend(db))

        async def scenario():
            await coordinator.load_board(board.id)
            return await coordinator.create_lane(board.id, name, mapped_states=states, wip_limit=wip_limit)

        result = asyncio.run(scenario())

        assert result.outcome == MutationOutcome.CONFIRMED
        assert not coordinator.is_temp_id(result.entity_id)
        lane = coordinator.store.get_lane(result.entity_id)
        assert (lane.name, lane.mapped_states, lane.wip_limit) == (name.strip(), states, wip_limit)
