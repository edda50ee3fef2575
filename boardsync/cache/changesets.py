"""
boardsync Cache Changesets

Primitive, invertible operations over the normalized cache state. Every
write to the cache is a Changeset; applying one returns the Changeset that
undoes it, which is what optimistic mutations keep for rollback.

Example:
    inverse = Changeset([PutLane(lane), SetSyncState(lane.id, SyncState.PENDING)]).apply(state)
    ...
    inverse.apply(state)  # state is back to where it was
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from boardsync.cache.keys import BoardKey, CacheKey, ProjectBoardsKey
from boardsync.models.domain import Board, Lane


@dataclass
class CacheState:
    """
    Normalized cache tables.

    Attributes:
        boards: board id -> board row (lanes always empty)
        lanes: lane id -> lane
        lane_order: board id -> ordered lane ids
        project_boards: project id -> ordered board ids, once loaded
        sync: entity id -> SyncState value
    """
    boards: Dict[str, Board] = field(default_factory=dict)
    lanes: Dict[str, Lane] = field(default_factory=dict)
    lane_order: Dict[str, List[str]] = field(default_factory=dict)
    project_boards: Dict[str, List[str]] = field(default_factory=dict)
    sync: Dict[str, str] = field(default_factory=dict)

    def board_keys(self, board_id: Optional[str]) -> Set[CacheKey]:
        """Keys whose views include the given board."""
        if board_id is None:
            return set()
        keys: Set[CacheKey] = {BoardKey(board_id)}
        board = self.boards.get(board_id)
        if board is not None:
            keys.add(ProjectBoardsKey(board.project_id))
        return keys


class CacheOp(ABC):
    """A single invertible write."""

    @abstractmethod
    def apply(self, state: CacheState) -> "CacheOp":
        """Apply to state and return the operation that undoes it."""

    @abstractmethod
    def affected(self, state: CacheState) -> Set[CacheKey]:
        """Keys whose views this operation changes, given the current state."""


@dataclass(frozen=True)
class PutBoard(CacheOp):
    board: Board

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.boards.get(self.board.id)
        state.boards[self.board.id] = replace(copy.deepcopy(self.board), lanes=[])
        if previous is None:
            return DropBoard(self.board.id)
        return PutBoard(previous)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        return state.board_keys(self.board.id) | {ProjectBoardsKey(self.board.project_id)}


@dataclass(frozen=True)
class DropBoard(CacheOp):
    board_id: str

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.boards.pop(self.board_id, None)
        if previous is None:
            return Changeset()
        return PutBoard(previous)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        return state.board_keys(self.board_id)


@dataclass(frozen=True)
class PutLane(CacheOp):
    lane: Lane

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.lanes.get(self.lane.id)
        state.lanes[self.lane.id] = copy.deepcopy(self.lane)
        if previous is None:
            return DropLane(self.lane.id)
        return PutLane(previous)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        keys = state.board_keys(self.lane.board_id)
        previous = state.lanes.get(self.lane.id)
        if previous is not None:
            keys |= state.board_keys(previous.board_id)
        return keys


@dataclass(frozen=True)
class DropLane(CacheOp):
    lane_id: str

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.lanes.pop(self.lane_id, None)
        if previous is None:
            return Changeset()
        return PutLane(previous)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        lane = state.lanes.get(self.lane_id)
        return state.board_keys(lane.board_id) if lane is not None else set()


@dataclass(frozen=True)
class SetLaneOrder(CacheOp):
    """Replace a board's lane order. `lane_ids=None` removes the entry."""
    board_id: str
    lane_ids: Optional[Tuple[str, ...]]

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.lane_order.get(self.board_id)
        if self.lane_ids is None:
            state.lane_order.pop(self.board_id, None)
        else:
            state.lane_order[self.board_id] = list(self.lane_ids)
        return SetLaneOrder(self.board_id, tuple(previous) if previous is not None else None)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        return state.board_keys(self.board_id)


@dataclass(frozen=True)
class SetProjectBoards(CacheOp):
    """Replace a project's board list. `board_ids=None` marks it not loaded."""
    project_id: str
    board_ids: Optional[Tuple[str, ...]]

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.project_boards.get(self.project_id)
        if self.board_ids is None:
            state.project_boards.pop(self.project_id, None)
        else:
            state.project_boards[self.project_id] = list(self.board_ids)
        return SetProjectBoards(self.project_id, tuple(previous) if previous is not None else None)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        return {ProjectBoardsKey(self.project_id)}


@dataclass(frozen=True)
class SetSyncState(CacheOp):
    """Record an entity's lifecycle state. `state=None` forgets it."""
    entity_id: str
    state: Optional[str]

    def apply(self, state: CacheState) -> CacheOp:
        previous = state.sync.get(self.entity_id)
        if self.state is None:
            state.sync.pop(self.entity_id, None)
        else:
            state.sync[self.entity_id] = self.state
        return SetSyncState(self.entity_id, previous)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        if self.entity_id in state.boards:
            return state.board_keys(self.entity_id)
        lane = state.lanes.get(self.entity_id)
        return state.board_keys(lane.board_id) if lane is not None else set()


class Changeset(CacheOp):
    """An ordered list of operations applied as one step."""

    def __init__(self, ops: Iterable[CacheOp] = ()) -> None:
        self.ops: List[CacheOp] = list(ops)

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self):
        return iter(self.ops)

    def __repr__(self) -> str:
        return f"Changeset({self.ops!r})"

    def add(self, *ops: CacheOp) -> "Changeset":
        self.ops.extend(ops)
        return self

    def apply(self, state: CacheState) -> "Changeset":
        inverses = [op.apply(state) for op in self.ops]
        inverses.reverse()
        return Changeset(inverses)

    def affected(self, state: CacheState) -> Set[CacheKey]:
        keys: Set[CacheKey] = set()
        for op in self.ops:
            keys |= op.affected(state)
        return keys


def layout_lanes(board_id: str, lanes: Sequence[Lane]) -> List[CacheOp]:
    """
    Operations that make `lanes` the board's order with dense positions.

    Only lanes whose board or position actually changes are rewritten.
    """
    ops: List[CacheOp] = []
    for index, lane in enumerate(lanes):
        if lane.position != index or lane.board_id != board_id:
            ops.append(PutLane(replace(lane, board_id=board_id, position=index)))
    ops.append(SetLaneOrder(board_id, tuple(lane.id for lane in lanes)))
    return ops
