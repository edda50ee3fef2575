"""
boardsync Board Cache

A normalized client-side store for boards and lanes. Both read views
(one board by id, all boards of a project) are assembled from the same
tables, and every write goes through `apply`, so the views cannot diverge.

The cache is an ordinary object: create one per client and pass it to
whatever needs it.

Example:
    cache = BoardCache(loader=backend)
    await cache.invalidate(BoardKey(board_id))
    board = cache.get(BoardKey(board_id))
"""

import copy
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from boardsync.cache.changesets import (
    CacheOp,
    CacheState,
    Changeset,
    DropBoard,
    DropLane,
    PutBoard,
    PutLane,
    SetLaneOrder,
    SetProjectBoards,
    SetSyncState,
)
from boardsync.cache.keys import BoardKey, CacheKey, ProjectBoardsKey
from boardsync.logging import get_logger
from boardsync.models.domain import Board, Lane, SyncState

logger = get_logger(__name__)

Subscriber = Callable[[Any], None]

# Local records a refresh must keep even though the server does not know them.
PLACEHOLDER_STATES = (SyncState.UNSAVED, SyncState.PENDING)
# Records a refresh must not bring back.
GONE_STATES = (SyncState.DELETING, SyncState.REMOVED)


class BoardLoader(Protocol):
    """What `invalidate` needs from a backend."""

    async def get_board(self, board_id: str) -> Optional[Board]:
        ...

    async def list_boards(self, project_id: str) -> List[Board]:
        ...


class BoardCache:
    """
    Normalized board/lane cache with keyed views and subscriptions.

    Args:
        loader: Source for `invalidate` refetches (usually a BoardBackend)
        temp_id_prefix: Marker of client-generated placeholder ids
    """

    def __init__(self, loader: Optional[BoardLoader] = None, temp_id_prefix: str = "temp-") -> None:
        self.loader = loader
        self.temp_id_prefix = temp_id_prefix
        self._state = CacheState()
        self._subscribers: Dict[CacheKey, List[Subscriber]] = {}

    # Reads

    def get(self, key: CacheKey) -> Any:
        """
        Return a copy of the view for `key`.

        BoardKey -> Board with ordered lanes, or None if not cached.
        ProjectBoardsKey -> list of such boards, or None if never loaded.
        """
        if isinstance(key, BoardKey):
            return self._assemble(key.board_id)
        if isinstance(key, ProjectBoardsKey):
            board_ids = self._state.project_boards.get(key.project_id)
            if board_ids is None:
                return None
            return [self._assemble(board_id) for board_id in board_ids if board_id in self._state.boards]
        raise TypeError(f"Unsupported cache key: {key!r}")

    def get_lane(self, lane_id: str) -> Optional[Lane]:
        lane = self._state.lanes.get(lane_id)
        return copy.deepcopy(lane) if lane is not None else None

    def project_board_rows(self, project_id: str) -> List[Board]:
        """Every cached board row of a project, loaded list or not."""
        return [
            copy.deepcopy(board)
            for board in self._state.boards.values()
            if board.project_id == project_id
        ]

    def sync_state(self, entity_id: str) -> Optional[str]:
        return self._state.sync.get(entity_id)

    def is_placeholder(self, entity_id: str) -> bool:
        """True for ids the store has not confirmed yet."""
        return (
            entity_id.startswith(self.temp_id_prefix)
            or self._state.sync.get(entity_id) in PLACEHOLDER_STATES
        )

    def snapshot(self) -> CacheState:
        """Deep copy of the normalized tables."""
        return copy.deepcopy(self._state)

    def _assemble(self, board_id: str) -> Optional[Board]:
        board = self._state.boards.get(board_id)
        if board is None:
            return None
        lanes = [
            copy.deepcopy(self._state.lanes[lane_id])
            for lane_id in self._state.lane_order.get(board_id, [])
            if lane_id in self._state.lanes
        ]
        return replace(copy.deepcopy(board), lanes=lanes)

    # Writes

    def apply(self, changeset: CacheOp) -> Changeset:
        """
        Apply a changeset and notify subscribers of every affected view.

        Returns the inverse changeset. There is no await in here, so an apply
        is atomic with respect to other coroutines.
        """
        if not isinstance(changeset, Changeset):
            changeset = Changeset([changeset])
        touched = changeset.affected(self._state)
        inverse = changeset.apply(self._state)
        touched |= inverse.affected(self._state)
        logger.debug(
            "Cache changeset applied",
            extra={"ops": len(changeset), "views": len(touched)},
        )
        self._notify(touched)
        return inverse

    def set(self, key: CacheKey, updater: Callable[[Any], Any]) -> Changeset:
        """
        Write a view through an updater function.

        The updater receives the current view value and returns the new one;
        the difference is normalized into a changeset and applied. Returns
        the inverse changeset.
        """
        current = self.get(key)
        updated = updater(copy.deepcopy(current))
        changeset = Changeset()
        if isinstance(key, BoardKey):
            if updated is None:
                if current is not None:
                    changeset.add(*self._drop_board_ops(key.board_id))
            else:
                changeset.add(*self._put_board_ops(updated))
        elif isinstance(key, ProjectBoardsKey):
            if updated is None:
                changeset.add(SetProjectBoards(key.project_id, None))
            else:
                for board in updated:
                    changeset.add(*self._put_board_ops(board, list_board=False))
                changeset.add(SetProjectBoards(key.project_id, tuple(board.id for board in updated)))
        else:
            raise TypeError(f"Unsupported cache key: {key!r}")
        return self.apply(changeset)

    def _put_board_ops(self, board: Board, list_board: bool = True) -> List[CacheOp]:
        ops: List[CacheOp] = []
        if self._state.boards.get(board.id) != replace(board, lanes=[]):
            ops.append(PutBoard(board))
        lanes = [replace(lane, board_id=board.id) for lane in board.lanes]
        kept = {lane.id for lane in lanes}
        for lane_id in self._state.lane_order.get(board.id, []):
            if lane_id not in kept:
                ops.append(DropLane(lane_id))
        for index, lane in enumerate(lanes):
            lane = replace(lane, position=index)
            if self._state.lanes.get(lane.id) != lane:
                ops.append(PutLane(lane))
        ops.append(SetLaneOrder(board.id, tuple(lane.id for lane in lanes)))
        listed = self._state.project_boards.get(board.project_id)
        if list_board and listed is not None and board.id not in listed:
            ops.append(SetProjectBoards(board.project_id, tuple(listed) + (board.id,)))
        return ops

    def _drop_board_ops(self, board_id: str) -> List[CacheOp]:
        ops: List[CacheOp] = [DropLane(lane_id) for lane_id in self._state.lane_order.get(board_id, [])]
        ops.append(SetLaneOrder(board_id, None))
        board = self._state.boards.get(board_id)
        if board is not None:
            listed = self._state.project_boards.get(board.project_id)
            if listed is not None and board_id in listed:
                ops.append(
                    SetProjectBoards(board.project_id, tuple(b for b in listed if b != board_id))
                )
        ops.append(DropBoard(board_id))
        return ops

    # Refetch and merge

    async def invalidate(self, key: CacheKey) -> Changeset:
        """
        Refetch a view from the loader and merge it into the cache.

        Placeholder boards are never refetched. The merge keeps placeholder
        lanes and boards that are still unsaved or pending, leaves out records
        that are being deleted, and renumbers positions densely.

        Raises:
            BackendError: If the loader fails; the cache is left untouched
        """
        if self.loader is None:
            raise RuntimeError("BoardCache has no loader to refetch from")

        if isinstance(key, BoardKey):
            if self.is_placeholder(key.board_id):
                return Changeset()
            fetched = await self.loader.get_board(key.board_id)
            changeset = Changeset()
            if fetched is None:
                if key.board_id in self._state.boards:
                    changeset.add(*self._drop_board_ops(key.board_id))
                    changeset.add(SetSyncState(key.board_id, SyncState.REMOVED))
            else:
                changeset.add(*self._merge_board_ops(fetched))
            return self.apply(changeset)

        if isinstance(key, ProjectBoardsKey):
            fetched_boards = await self.loader.list_boards(key.project_id)
            return self.apply(Changeset(self._merge_project_ops(key.project_id, fetched_boards)))

        raise TypeError(f"Unsupported cache key: {key!r}")

    def _merge_board_ops(self, fetched: Board) -> List[CacheOp]:
        state = self._state
        local_order = state.lane_order.get(fetched.id, [])
        server_lanes = [
            lane for lane in fetched.lanes
            if state.sync.get(lane.id) not in GONE_STATES
        ]
        server_keys = {lane.client_key for lane in server_lanes if lane.client_key}
        server_ids = {lane.id for lane in server_lanes}

        merged: List[Lane] = list(server_lanes)
        ops: List[CacheOp] = []
        for index, lane_id in enumerate(local_order):
            lane = state.lanes.get(lane_id)
            if lane is None or lane_id in server_ids:
                continue
            if state.sync.get(lane_id) in PLACEHOLDER_STATES:
                if lane.client_key and lane.client_key in server_keys:
                    # The create landed and the refresh saw it first.
                    ops.extend([DropLane(lane_id), SetSyncState(lane_id, None)])
                else:
                    merged.insert(min(index, len(merged)), lane)
            elif state.sync.get(lane_id) not in GONE_STATES:
                ops.extend([DropLane(lane_id), SetSyncState(lane_id, None)])

        if state.boards.get(fetched.id) != replace(fetched, lanes=[]):
            ops.append(PutBoard(fetched))
        for index, lane in enumerate(merged):
            lane = replace(lane, position=index)
            if state.lanes.get(lane.id) != lane:
                ops.append(PutLane(lane))
            if lane.id in server_ids and state.sync.get(lane.id) != SyncState.CONFIRMED:
                ops.append(SetSyncState(lane.id, SyncState.CONFIRMED))
        ops.append(SetLaneOrder(fetched.id, tuple(lane.id for lane in merged)))
        if state.sync.get(fetched.id) != SyncState.CONFIRMED:
            ops.append(SetSyncState(fetched.id, SyncState.CONFIRMED))
        listed = state.project_boards.get(fetched.project_id)
        if listed is not None and fetched.id not in listed:
            ops.append(SetProjectBoards(fetched.project_id, tuple(listed) + (fetched.id,)))
        return ops

    def _merge_project_ops(self, project_id: str, fetched_boards: List[Board]) -> List[CacheOp]:
        state = self._state
        server = [board for board in fetched_boards if state.sync.get(board.id) not in GONE_STATES]
        server_ids = {board.id for board in server}
        server_keys = {board.client_key for board in server if board.client_key}

        ordered: List[str] = [board.id for board in server]
        ops: List[CacheOp] = []
        for board in server:
            ops.extend(self._merge_board_ops(board))

        local_list = state.project_boards.get(project_id)
        if local_list is None:
            local_list = [board.id for board in state.boards.values() if board.project_id == project_id]
        for index, board_id in enumerate(local_list):
            if board_id in server_ids or board_id not in state.boards:
                continue
            board = state.boards[board_id]
            if state.sync.get(board_id) in PLACEHOLDER_STATES:
                if board.client_key and board.client_key in server_keys:
                    # Let the pending create reconcile its own unsaved lanes.
                    continue
                ordered.insert(min(index, len(ordered)), board_id)
            elif state.sync.get(board_id) not in GONE_STATES:
                ops.extend(self._drop_board_ops(board_id))
                ops.append(SetSyncState(board_id, None))

        ops.append(SetProjectBoards(project_id, tuple(ordered)))
        return ops

    # Raw ids for callers building changesets

    def lane_ids(self, board_id: str) -> List[str]:
        return list(self._state.lane_order.get(board_id, []))

    def board_ids(self, project_id: str) -> Optional[List[str]]:
        """The project's board list, or None if it was never loaded."""
        board_ids = self._state.project_boards.get(project_id)
        return list(board_ids) if board_ids is not None else None

    def lanes_referencing(self, board_id: str) -> List[str]:
        """Ids of cached lanes whose board_id is `board_id`, ordered or not."""
        return [lane.id for lane in self._state.lanes.values() if lane.board_id == board_id]

    # Subscriptions

    def subscribe(self, key: CacheKey, callback: Subscriber) -> Callable[[], None]:
        """
        Call `callback(view_value)` after every write that changes `key`'s view.

        Returns a function that removes the subscription.
        """
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    def _notify(self, keys: Set[CacheKey]) -> None:
        for key in keys:
            callbacks = list(self._subscribers.get(key, []))
            if not callbacks:
                continue
            value = self.get(key)
            for callback in callbacks:
                try:
                    callback(value)
                except Exception as e:
                    logger.error(
                        f"Error in cache subscriber: {e}",
                        extra={"key": repr(key), "error": str(e)},
                    )
