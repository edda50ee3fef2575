"""
boardsync Board Mutation Coordinator

Optimistic create/update/delete/reorder for boards and lanes. Each
operation validates, guards against placeholder ids, writes a speculative
changeset to the cache, dispatches to the backend and then either
reconciles with the canonical record or applies the inverse changeset.

Operations never raise: they return a MutationResult and publish exactly
one Notification per settled mutation on the injected EventBus.
"""

import functools
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, TypeVar

from boardsync.backend.interface import BoardBackend
from boardsync.cache import (
    BoardCache,
    BoardKey,
    CacheOp,
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
from boardsync.cache.store import GONE_STATES
from boardsync.config import Config
from boardsync.errors import (
    BackendUnavailableError,
    BoardSyncError,
    ConfigError,
    EntityNotFoundError,
    TemporaryIdError,
    ValidationError,
)
from boardsync.logging import log_context, set_log_context
from boardsync.models.domain import (
    BOARD_PATCH_FIELDS,
    LANE_PATCH_FIELDS,
    Board,
    BoardType,
    Lane,
    SyncState,
)
from boardsync.services.base import Service, ServiceContext
from boardsync.services.events import (
    EventBus,
    MutationApplied,
    MutationConfirmed,
    MutationRejected,
    MutationRolledBack,
    Notification,
)
from boardsync.services.results import MutationOutcome, MutationResult

T = TypeVar("T")

# operation -> (entity noun, verb, past participle) for notifications
_OPERATIONS: Dict[str, tuple] = {
    "load_board": ("board", "load", "loaded"),
    "load_project_boards": ("boards", "load", "loaded"),
    "create_lane": ("lane", "create", "created"),
    "update_lane": ("lane", "update", "updated"),
    "delete_lane": ("lane", "delete", "deleted"),
    "reorder_lanes": ("lanes", "reorder", "reordered"),
    "move_lane": ("lane", "move", "moved"),
    "create_board": ("board", "create", "created"),
    "update_board": ("board", "update", "updated"),
    "delete_board": ("board", "delete", "deleted"),
    "assign_sprint": ("board", "move", "moved to sprint"),
}

MOVE_DIRECTIONS = ("up", "down")


def _flatten(ops: Iterable[CacheOp]) -> Iterable[CacheOp]:
    for op in ops:
        if isinstance(op, Changeset):
            yield from _flatten(op)
        else:
            yield op


def _traced(id_field: str):
    """Run an operation inside a log context naming it and its target id."""
    def decorator(method):
        @functools.wraps(method)
        async def wrapper(self, *args, **kwargs):
            target = args[0] if args else kwargs.get(id_field)
            with log_context(operation=method.__name__, **{id_field: target}):
                return await method(self, *args, **kwargs)
        return wrapper
    return decorator


# Validation helpers (error class: validation, nothing written yet)

def _clean_name(name: Any, what: str) -> str:
    if name is None or not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{what} name is required")
    return name.strip()


def _check_wip_limit(wip_limit: Any) -> Optional[int]:
    if wip_limit is None:
        return None
    if isinstance(wip_limit, bool) or not isinstance(wip_limit, int) or wip_limit < 1:
        raise ValidationError(f"WIP limit must be a positive integer, got {wip_limit!r}")
    return wip_limit


def _check_states(mapped_states: Any) -> List[str]:
    if mapped_states is None:
        return []
    if isinstance(mapped_states, str):
        raise ValidationError("Mapped states must be a list of state ids")
    states = list(mapped_states)
    if not all(isinstance(state, str) and state for state in states):
        raise ValidationError("Mapped states must be non-empty state ids")
    if len(set(states)) != len(states):
        raise ValidationError("Mapped states contain duplicates")
    return states


def _check_board_type(board_type: Any) -> str:
    if board_type not in BoardType.ALL:
        raise ValidationError(f"Unknown board type {board_type!r}")
    return board_type


def _check_patch(patch: Dict[str, Any], allowed: Sequence[str], what: str) -> None:
    unknown = sorted(set(patch) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown {what} fields: {', '.join(unknown)}")


class BoardMutationCoordinator(Service):
    """
    Optimistic mutation coordinator for boards and lanes.

    Example:
        context = ServiceContext(config=get_config())
        backend = LocalBoardBackend(db)
        store = BoardCache(loader=backend, temp_id_prefix=context.config.temp_id_prefix)
        coordinator = BoardMutationCoordinator(context, backend, store, EventBus())

        await coordinator.load_board(board_id)
        result = await coordinator.create_lane(board_id, "Review", wip_limit=3)
        if not result.success:
            print(result.error.user_message)
    """

    def __init__(
        self,
        context: ServiceContext,
        backend: BoardBackend,
        store: BoardCache,
        bus: EventBus,
    ) -> None:
        super().__init__(context)
        if store.temp_id_prefix != self.config.temp_id_prefix:
            raise ConfigError(
                "Cache and coordinator disagree on the placeholder id prefix",
                metadata={"cache": store.temp_id_prefix, "config": self.config.temp_id_prefix},
            )
        self.backend = backend
        self.store = store
        self.bus = bus

    # Identifiers

    def _temp_id(self) -> str:
        return f"{self.config.temp_id_prefix}{uuid.uuid4().hex}"

    @staticmethod
    def _mutation_id() -> str:
        mutation_id = uuid.uuid4().hex[:12]
        set_log_context(mutation_id=mutation_id)
        return mutation_id

    def is_temp_id(self, entity_id: str) -> bool:
        return entity_id.startswith(self.config.temp_id_prefix)

    # Lookups

    def _require_board(self, board_id: str) -> Board:
        board = self.store.get(BoardKey(board_id))
        if board is None:
            raise EntityNotFoundError(f"Board {board_id} is not loaded", metadata={"board_id": board_id})
        return board

    def _require_lane(self, lane_id: str) -> Lane:
        lane = self.store.get_lane(lane_id)
        if lane is None or lane_id not in self.store.lane_ids(lane.board_id):
            raise EntityNotFoundError(f"Lane {lane_id} is not loaded", metadata={"lane_id": lane_id})
        return lane

    def _lanes_in_order(self, board_id: str) -> List[Lane]:
        lanes = (self.store.get_lane(lane_id) for lane_id in self.store.lane_ids(board_id))
        return [lane for lane in lanes if lane is not None]

    # Lifecycle plumbing

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Await a backend call; anything that is not a BoardSyncError becomes one."""
        try:
            return await awaitable
        except BoardSyncError:
            raise
        except Exception as exc:
            self.logger.exception("Unexpected backend failure", extra=self.log_extra(error=str(exc)))
            raise BackendUnavailableError(str(exc) or exc.__class__.__name__) from exc

    def _apply(
        self,
        operation: str,
        mutation_id: str,
        changeset: Changeset,
        *,
        entity_id: Optional[str],
        board_id: Optional[str] = None,
    ) -> Changeset:
        inverse = self.store.apply(changeset)
        entity_type = _OPERATIONS[operation][0]
        self.logger.info(
            "Mutation applied",
            extra=self.log_extra(
                mutation_id=mutation_id, board_id=board_id, operation=operation, entity_id=entity_id
            ),
        )
        self.bus.publish(
            MutationApplied(
                mutation_id=mutation_id,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
            )
        )
        return inverse

    def _rejected(
        self,
        operation: str,
        mutation_id: str,
        error: BoardSyncError,
        *,
        entity_id: Optional[str] = None,
    ) -> MutationResult:
        entity_type, verb, _ = _OPERATIONS[operation]
        self.logger.warning(
            "Mutation rejected",
            extra=self.log_extra(
                mutation_id=mutation_id,
                operation=operation,
                entity_id=entity_id,
                category=error.category,
                error=str(error),
            ),
        )
        self.bus.publish(
            MutationRejected(
                mutation_id=mutation_id,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(error),
                category=error.category,
            )
        )
        if isinstance(error, (TemporaryIdError, ValidationError)):
            message = error.user_message
        else:
            message = f"Failed to {verb} {entity_type}: {error.user_message}"
        self._notify(operation, mutation_id, "error", message)
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.REJECTED,
            entity_id=entity_id,
            error=error,
            mutation_id=mutation_id,
        )

    def _settle_boards(self, changeset: Changeset) -> None:
        """
        Re-derive lane order for boards a rollback touched.

        An inverse restores the cache as it was before its mutation, so it
        can bring back lanes another mutation has since deleted. Those are
        dropped and the survivors renumbered.
        """
        board_ids = set()
        for op in _flatten(changeset):
            if isinstance(op, SetLaneOrder) and op.lane_ids is not None:
                board_ids.add(op.board_id)
            elif isinstance(op, PutLane):
                board_ids.add(op.lane.board_id)

        fixes = Changeset()
        dropped = 0
        for board_id in sorted(board_ids):
            if self.store.get(BoardKey(board_id)) is None:
                continue
            gone = [
                lane_id
                for lane_id in self.store.lanes_referencing(board_id)
                if self.store.sync_state(lane_id) in GONE_STATES
            ]
            lanes = [lane for lane in self._lanes_in_order(board_id) if lane.id not in gone]
            dense = all(lane.position == index for index, lane in enumerate(lanes))
            if not gone and dense and [lane.id for lane in lanes] == self.store.lane_ids(board_id):
                continue
            dropped += len(gone)
            fixes.add(*(DropLane(lane_id) for lane_id in gone))
            fixes.add(*layout_lanes(board_id, lanes))
        if fixes:
            self.logger.info(
                "Lane order settled after rollback",
                extra=self.log_extra(boards=sorted(board_ids), dropped=dropped),
            )
            self.store.apply(fixes)

    def _rollback(
        self,
        operation: str,
        mutation_id: str,
        inverse: Changeset,
        error: BoardSyncError,
        *,
        entity_id: Optional[str] = None,
        extra_ops: Iterable[CacheOp] = (),
    ) -> MutationResult:
        changeset = Changeset(inverse.ops)
        changeset.add(*extra_ops)
        self.store.apply(changeset)
        self._settle_boards(changeset)
        entity_type, verb, _ = _OPERATIONS[operation]
        self.logger.warning(
            "Mutation rolled back",
            extra=self.log_extra(
                mutation_id=mutation_id,
                operation=operation,
                entity_id=entity_id,
                error=str(error),
                retryable=error.retryable,
            ),
        )
        self.bus.publish(
            MutationRolledBack(
                mutation_id=mutation_id,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(error),
                retryable=error.retryable,
            )
        )
        self._notify(operation, mutation_id, "error", f"Failed to {verb} {entity_type}: {error.user_message}")
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.ROLLED_BACK,
            entity_id=entity_id,
            error=error,
            mutation_id=mutation_id,
        )

    def _confirmed(
        self,
        operation: str,
        mutation_id: str,
        *,
        entity_id: Optional[str],
        entity: Any,
        placeholder_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> MutationResult:
        entity_type, _, past = _OPERATIONS[operation]
        self.logger.info(
            "Mutation confirmed",
            extra=self.log_extra(
                mutation_id=mutation_id,
                operation=operation,
                entity_id=entity_id,
                placeholder_id=placeholder_id,
            ),
        )
        self.bus.publish(
            MutationConfirmed(
                mutation_id=mutation_id,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                placeholder_id=placeholder_id,
            )
        )
        details = details or {}
        failed = details.get("failed_lanes") or []
        if failed:
            names = ", ".join(f"{item['name']} ({item['error']})" for item in failed)
            self._notify(
                operation,
                mutation_id,
                "error",
                f"{entity_type.capitalize()} {past}, but {len(failed)} lane(s) failed to save: {names}",
            )
        else:
            self._notify(operation, mutation_id, "success", f"{entity_type.capitalize()} {past}")
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.CONFIRMED,
            entity_id=entity_id,
            entity=entity,
            mutation_id=mutation_id,
            details=details,
        )

    def _local(self, operation: str, mutation_id: str, *, entity_id: str, entity: Any) -> MutationResult:
        entity_type, _, past = _OPERATIONS[operation]
        self._notify(operation, mutation_id, "success", f"{entity_type.capitalize()} {past} (not saved yet)")
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.LOCAL,
            entity_id=entity_id,
            entity=entity,
            mutation_id=mutation_id,
        )

    def _noop(self, operation: str, mutation_id: str, *, entity_id: Optional[str], entity: Any = None) -> MutationResult:
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.NOOP,
            entity_id=entity_id,
            entity=entity,
            mutation_id=mutation_id,
        )

    def _notify(self, operation: str, mutation_id: str, level: str, message: str) -> None:
        if level == "success" and not self.config.notify_success:
            return
        self.bus.publish(
            Notification(level=level, message=message, operation=operation, mutation_id=mutation_id)
        )

    async def _refresh(self, *, board_id: Optional[str] = None, project_id: Optional[str] = None) -> None:
        """Refetch affected views after a confirmed mutation. Failures only log."""
        if not self.config.refresh_after_mutation or self.store.loader is None:
            return
        keys: List[Any] = []
        if board_id is not None and not self.store.is_placeholder(board_id):
            keys.append(BoardKey(board_id))
        if project_id is not None and self.store.board_ids(project_id) is not None:
            keys.append(ProjectBoardsKey(project_id))
        for key in keys:
            try:
                await self._call(self.store.invalidate(key))
            except BoardSyncError as exc:
                self.logger.warning(
                    "Refresh after mutation failed",
                    extra=self.log_extra(board_id=board_id, project_id=project_id, error=str(exc)),
                )

    # Loads

    @_traced("board_id")
    async def load_board(self, board_id: str) -> MutationResult:
        """Fetch one board into the cache. Placeholder boards are served locally."""
        operation = "load_board"
        mutation_id = self._mutation_id()
        if self.store.is_placeholder(board_id):
            return self._noop(operation, mutation_id, entity_id=board_id, entity=self.store.get(BoardKey(board_id)))
        try:
            await self._call(self.store.invalidate(BoardKey(board_id)))
            board = self._require_board(board_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=board_id)
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.CONFIRMED,
            entity_id=board_id,
            entity=board,
            mutation_id=mutation_id,
        )

    @_traced("project_id")
    async def load_project_boards(self, project_id: str) -> MutationResult:
        """Fetch a project's boards into the cache."""
        operation = "load_project_boards"
        mutation_id = self._mutation_id()
        try:
            await self._call(self.store.invalidate(ProjectBoardsKey(project_id)))
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=project_id)
        return MutationResult(
            operation=operation,
            outcome=MutationOutcome.CONFIRMED,
            entity_id=project_id,
            entity=self.store.get(ProjectBoardsKey(project_id)),
            mutation_id=mutation_id,
        )

    # Lanes

    @_traced("board_id")
    async def create_lane(
        self,
        board_id: str,
        name: str,
        *,
        mapped_states: Optional[Sequence[str]] = None,
        wip_limit: Optional[int] = None,
        position: Optional[int] = None,
    ) -> MutationResult:
        """
        Create a lane, showing it immediately under a placeholder id.

        On a placeholder board the lane stays unsaved until the board create
        confirms. `position` defaults to the end and is clamped to the board.
        """
        operation = "create_lane"
        mutation_id = self._mutation_id()
        try:
            name = _clean_name(name, "Lane")
            wip_limit = _check_wip_limit(wip_limit)
            states = _check_states(mapped_states)
            if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
                raise ValidationError(f"Lane position must be an integer, got {position!r}")
            board = self._require_board(board_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=board_id)

        lanes = list(board.lanes)
        index = len(lanes) if position is None else max(0, min(position, len(lanes)))
        unsaved = self.store.is_placeholder(board_id)
        lane = Lane(
            id=self._temp_id(),
            board_id=board_id,
            name=name,
            position=index,
            mapped_states=states,
            wip_limit=wip_limit,
            client_key=uuid.uuid4().hex,
        )
        lanes.insert(index, lane)
        changeset = Changeset([PutLane(lane)])
        changeset.add(*layout_lanes(board_id, lanes))
        changeset.add(SetSyncState(lane.id, SyncState.UNSAVED if unsaved else SyncState.PENDING))
        inverse = self._apply(operation, mutation_id, changeset, entity_id=lane.id, board_id=board_id)

        if unsaved:
            return self._local(operation, mutation_id, entity_id=lane.id, entity=self.store.get_lane(lane.id))

        try:
            created = await self._call(
                self.backend.create_lane(
                    board_id=board_id,
                    name=name,
                    position=index,
                    mapped_states=states,
                    wip_limit=wip_limit,
                    client_key=lane.client_key,
                )
            )
        except BoardSyncError as exc:
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=lane.id)

        await self._reconcile_lane(lane, created, mutation_id)
        await self._refresh(board_id=board_id, project_id=board.project_id)
        return self._confirmed(
            operation,
            mutation_id,
            entity_id=created.id,
            entity=self.store.get_lane(created.id) or created,
            placeholder_id=lane.id,
        )

    async def _reconcile_lane(self, sent: Lane, created: Lane, mutation_id: str) -> None:
        """
        Swap a placeholder lane for its canonical record.

        The canonical lane takes the placeholder's current index. Edits made
        to the placeholder while the create was in flight are sent as a
        follow-up update, and a reorder is sent if the local order moved.
        """
        temp_id = sent.id
        board_id = created.board_id
        local = self.store.get_lane(temp_id)
        lanes = self._lanes_in_order(board_id)
        order = [lane.id for lane in lanes]
        records = {lane.id: lane for lane in lanes}

        patch: Dict[str, Any] = {}
        if local is not None:
            for field_name in LANE_PATCH_FIELDS:
                if getattr(local, field_name) != getattr(sent, field_name):
                    patch[field_name] = getattr(local, field_name)

        if created.id in records:
            # A refresh already brought the canonical lane in.
            order = [lane_id for lane_id in order if lane_id != temp_id]
        elif temp_id in order:
            order[order.index(temp_id)] = created.id
        elif self.store.get(BoardKey(board_id)) is not None:
            order.insert(min(created.position, len(order)), created.id)
        records[created.id] = replace(created, **patch)

        changeset = Changeset()
        if local is not None:
            changeset.add(DropLane(temp_id))
        if self.store.get(BoardKey(board_id)) is not None:
            canonical = replace(records[created.id], position=order.index(created.id))
            records[created.id] = canonical
            changeset.add(PutLane(canonical))
            changeset.add(*layout_lanes(board_id, [records[lane_id] for lane_id in order]))
        changeset.add(SetSyncState(temp_id, None), SetSyncState(created.id, SyncState.CONFIRMED))
        self.store.apply(changeset)

        if patch:
            try:
                updated = await self._call(self.backend.update_lane(created.id, **patch))
            except BoardSyncError as exc:
                self.logger.warning(
                    "Deferred lane edit failed",
                    extra=self.log_extra(mutation_id=mutation_id, lane_id=created.id, error=str(exc)),
                )
            else:
                current = self.store.get_lane(created.id)
                if current is not None:
                    self.store.apply(Changeset([PutLane(replace(updated, position=current.position))]))

        persisted = [lane_id for lane_id in self.store.lane_ids(board_id) if not self.store.is_placeholder(lane_id)]
        if created.id in persisted and persisted.index(created.id) != created.position:
            try:
                await self._call(
                    self.backend.reorder_lanes([(lane_id, index) for index, lane_id in enumerate(persisted)])
                )
            except BoardSyncError as exc:
                self.logger.warning(
                    "Deferred lane reorder failed",
                    extra=self.log_extra(mutation_id=mutation_id, board_id=board_id, error=str(exc)),
                )

    @_traced("lane_id")
    async def update_lane(self, lane_id: str, **patch: Any) -> MutationResult:
        """
        Patch a lane's name, mapped states, WIP limit or collapsed flag.

        Placeholder lanes are edited locally; a pending create sends the
        edits once it confirms.
        """
        operation = "update_lane"
        mutation_id = self._mutation_id()
        try:
            _check_patch(patch, LANE_PATCH_FIELDS, "lane")
            if "name" in patch:
                patch["name"] = _clean_name(patch["name"], "Lane")
            if "wip_limit" in patch:
                patch["wip_limit"] = _check_wip_limit(patch["wip_limit"])
            if "mapped_states" in patch:
                patch["mapped_states"] = _check_states(patch["mapped_states"])
            if "is_collapsed" in patch:
                patch["is_collapsed"] = bool(patch["is_collapsed"])
            lane = self._require_lane(lane_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=lane_id)

        updated = replace(lane, **patch)
        if not patch or updated == lane:
            return self._noop(operation, mutation_id, entity_id=lane_id, entity=lane)

        inverse = self._apply(
            operation, mutation_id, Changeset([PutLane(updated)]), entity_id=lane_id, board_id=lane.board_id
        )
        if self.store.is_placeholder(lane_id):
            return self._local(operation, mutation_id, entity_id=lane_id, entity=self.store.get_lane(lane_id))

        try:
            canonical = await self._call(self.backend.update_lane(lane_id, **patch))
        except BoardSyncError as exc:
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=lane_id)

        current = self.store.get_lane(lane_id)
        if current is not None:
            self.store.apply(Changeset([PutLane(replace(canonical, position=current.position))]))
        board = self.store.get(BoardKey(lane.board_id))
        await self._refresh(board_id=lane.board_id, project_id=board.project_id if board else None)
        return self._confirmed(
            operation, mutation_id, entity_id=lane_id, entity=self.store.get_lane(lane_id) or canonical
        )

    @_traced("lane_id")
    async def delete_lane(self, lane_id: str) -> MutationResult:
        """
        Delete a lane and renumber the rest.

        A lane whose create is still pending is refused; an unsaved lane on a
        placeholder board is simply dropped.
        """
        operation = "delete_lane"
        mutation_id = self._mutation_id()
        try:
            lane = self._require_lane(lane_id)
            if self.store.sync_state(lane_id) != SyncState.UNSAVED and self.store.is_placeholder(lane_id):
                raise TemporaryIdError("lane", lane_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=lane_id)

        board_id = lane.board_id
        remaining = [other for other in self._lanes_in_order(board_id) if other.id != lane_id]
        changeset = Changeset([DropLane(lane_id)])
        changeset.add(*layout_lanes(board_id, remaining))

        if self.store.sync_state(lane_id) == SyncState.UNSAVED:
            changeset.add(SetSyncState(lane_id, None))
            self._apply(operation, mutation_id, changeset, entity_id=lane_id, board_id=board_id)
            return self._local(operation, mutation_id, entity_id=lane_id, entity=None)

        changeset.add(SetSyncState(lane_id, SyncState.DELETING))
        inverse = self._apply(operation, mutation_id, changeset, entity_id=lane_id, board_id=board_id)
        try:
            await self._call(self.backend.delete_lane(lane_id))
        except BoardSyncError as exc:
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=lane_id)

        self.store.apply(Changeset([SetSyncState(lane_id, SyncState.REMOVED)]))
        board = self.store.get(BoardKey(board_id))
        await self._refresh(board_id=board_id, project_id=board.project_id if board else None)
        return self._confirmed(operation, mutation_id, entity_id=lane_id, entity=None)

    @_traced("board_id")
    async def reorder_lanes(self, board_id: str, ordered_ids: Sequence[str]) -> MutationResult:
        """
        Put a board's lanes in the given order.

        Every lane of the board must appear exactly once. The whole order is
        applied locally; only persisted lanes are sent, densely numbered.
        """
        return await self._reorder("reorder_lanes", board_id, ordered_ids)

    @_traced("lane_id")
    async def move_lane(self, lane_id: str, direction: str) -> MutationResult:
        """Swap a lane with its neighbour ("up" towards position 0, or "down")."""
        operation = "move_lane"
        mutation_id = self._mutation_id()
        try:
            if direction not in MOVE_DIRECTIONS:
                raise ValidationError(f"Direction must be one of {', '.join(MOVE_DIRECTIONS)}, got {direction!r}")
            lane = self._require_lane(lane_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=lane_id)

        order = [other.id for other in self._lanes_in_order(lane.board_id)]
        index = order.index(lane_id)
        target = index - 1 if direction == "up" else index + 1
        if target < 0 or target >= len(order):
            return self._noop(operation, mutation_id, entity_id=lane_id, entity=lane)
        order[index], order[target] = order[target], order[index]
        return await self._reorder(operation, lane.board_id, order, mutation_id=mutation_id, entity_id=lane_id)

    async def _reorder(
        self,
        operation: str,
        board_id: str,
        ordered_ids: Sequence[str],
        *,
        mutation_id: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> MutationResult:
        mutation_id = mutation_id or self._mutation_id()
        entity_id = entity_id or board_id
        try:
            board = self._require_board(board_id)
            try:
                ordered = list(ordered_ids)
            except TypeError:
                raise ValidationError("Reorder needs a list of lane ids") from None
            if not all(isinstance(lane_id, str) for lane_id in ordered):
                raise ValidationError("Lane ids must be strings")
            current = [lane.id for lane in board.lanes]
            if len(set(ordered)) != len(ordered) or sorted(ordered) != sorted(current):
                raise ValidationError("Reorder must list every lane of the board exactly once")
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=entity_id)

        if ordered == current:
            return self._noop(operation, mutation_id, entity_id=entity_id, entity=board)

        by_id = {lane.id: lane for lane in board.lanes}
        inverse = self._apply(
            operation,
            mutation_id,
            Changeset(layout_lanes(board_id, [by_id[lane_id] for lane_id in ordered])),
            entity_id=entity_id,
            board_id=board_id,
        )
        persisted = [lane_id for lane_id in ordered if not self.store.is_placeholder(lane_id)]
        if self.store.is_placeholder(board_id) or not persisted:
            return self._local(operation, mutation_id, entity_id=entity_id, entity=self.store.get(BoardKey(board_id)))

        try:
            await self._call(
                self.backend.reorder_lanes([(lane_id, index) for index, lane_id in enumerate(persisted)])
            )
        except BoardSyncError as exc:
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=entity_id)

        await self._refresh(board_id=board_id, project_id=board.project_id)
        return self._confirmed(
            operation, mutation_id, entity_id=entity_id, entity=self.store.get(BoardKey(board_id))
        )

    # Boards

    def _default_ops(self, project_id: str, keep_id: str) -> List[CacheOp]:
        """Clear is_default on the project's other cached boards."""
        return [
            PutBoard(replace(other, is_default=False))
            for other in self.store.project_board_rows(project_id)
            if other.id != keep_id and other.is_default
        ]

    @_traced("project_id")
    async def create_board(
        self,
        project_id: str,
        name: str,
        *,
        board_type: str = BoardType.KANBAN,
        is_default: bool = False,
        sprint_id: Optional[str] = None,
    ) -> MutationResult:
        """
        Create a board under a placeholder id.

        Lanes added to the placeholder stay unsaved; once the board is
        confirmed they move to the real board and are created one by one.
        """
        operation = "create_board"
        mutation_id = self._mutation_id()
        try:
            name = _clean_name(name, "Board")
            board_type = _check_board_type(board_type)
            if not project_id:
                raise ValidationError("Project id is required")
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=project_id)

        board = Board(
            id=self._temp_id(),
            project_id=project_id,
            name=name,
            board_type=board_type,
            is_default=bool(is_default),
            sprint_id=sprint_id,
            client_key=uuid.uuid4().hex,
        )
        changeset = Changeset([PutBoard(board), SetLaneOrder(board.id, ()), SetSyncState(board.id, SyncState.PENDING)])
        listed = self.store.board_ids(project_id)
        if listed is not None:
            changeset.add(SetProjectBoards(project_id, tuple(listed) + (board.id,)))
        if board.is_default:
            changeset.add(*self._default_ops(project_id, board.id))
        inverse = self._apply(operation, mutation_id, changeset, entity_id=board.id, board_id=board.id)

        try:
            created = await self._call(
                self.backend.create_board(
                    project_id=project_id,
                    name=name,
                    board_type=board_type,
                    is_default=board.is_default,
                    sprint_id=sprint_id,
                    client_key=board.client_key,
                )
            )
        except BoardSyncError as exc:
            orphans: List[CacheOp] = []
            for lane_id in self.store.lanes_referencing(board.id):
                orphans.extend([DropLane(lane_id), SetSyncState(lane_id, None)])
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=board.id, extra_ops=orphans)

        unsaved = await self._reconcile_board(board, created, mutation_id)
        failed = await self._flush_lanes(created.id, unsaved, mutation_id)
        await self._refresh(board_id=created.id, project_id=project_id)
        return self._confirmed(
            operation,
            mutation_id,
            entity_id=created.id,
            entity=self.store.get(BoardKey(created.id)) or created,
            placeholder_id=board.id,
            details={"failed_lanes": failed} if failed else None,
        )

    async def _reconcile_board(self, sent: Board, created: Board, mutation_id: str) -> List[str]:
        """
        Swap a placeholder board for its canonical record.

        Returns the ids of unsaved lanes, now attached to the real board and
        marked pending, in board order.
        """
        temp_id = sent.id
        local = self.store.get(BoardKey(temp_id))
        cached = self.store.get(BoardKey(created.id))

        patch: Dict[str, Any] = {}
        if local is not None:
            for field_name in ("name", "board_type", "is_default", "sprint_id"):
                if getattr(local, field_name) != getattr(sent, field_name):
                    patch[field_name] = getattr(local, field_name)

        unsaved = list(local.lanes) if local is not None else []
        existing = list(cached.lanes) if cached is not None else []
        changeset = Changeset()
        if local is not None:
            changeset.add(SetLaneOrder(temp_id, None), DropBoard(temp_id))
        changeset.add(SetSyncState(temp_id, None))
        canonical = replace(cached if cached is not None else created, **patch)
        changeset.add(PutBoard(canonical))
        changeset.add(*layout_lanes(created.id, existing + unsaved))
        changeset.add(SetSyncState(created.id, SyncState.CONFIRMED))
        for lane in unsaved:
            changeset.add(SetSyncState(lane.id, SyncState.PENDING))

        listed = self.store.board_ids(created.project_id)
        if listed is not None:
            if temp_id in listed and created.id in listed:
                listed.remove(temp_id)
            elif temp_id in listed:
                listed[listed.index(temp_id)] = created.id
            elif created.id not in listed:
                listed.append(created.id)
            changeset.add(SetProjectBoards(created.project_id, tuple(listed)))
        if canonical.is_default:
            changeset.add(*self._default_ops(created.project_id, created.id))
        self.store.apply(changeset)

        if patch:
            try:
                updated = await self._call(self.backend.update_board(created.id, **patch))
            except BoardSyncError as exc:
                self.logger.warning(
                    "Deferred board edit failed",
                    extra=self.log_extra(mutation_id=mutation_id, board_id=created.id, error=str(exc)),
                )
            else:
                self.store.apply(Changeset([PutBoard(updated)]))
        return [lane.id for lane in unsaved]

    async def _flush_lanes(self, board_id: str, lane_ids: List[str], mutation_id: str) -> List[Dict[str, Any]]:
        """Create formerly unsaved lanes on a confirmed board, in order."""
        failed: List[Dict[str, Any]] = []
        for lane_id in lane_ids:
            lane = self.store.get_lane(lane_id)
            if lane is None:
                continue
            persisted = [other for other in self.store.lane_ids(board_id) if not self.store.is_placeholder(other)]
            position = min(lane.position, len(persisted))
            sent = replace(lane, is_collapsed=False)
            try:
                created = await self._call(
                    self.backend.create_lane(
                        board_id=board_id,
                        name=lane.name,
                        position=position,
                        mapped_states=lane.mapped_states,
                        wip_limit=lane.wip_limit,
                        client_key=lane.client_key,
                    )
                )
            except BoardSyncError as exc:
                self.logger.warning(
                    "Lane flush failed",
                    extra=self.log_extra(mutation_id=mutation_id, board_id=board_id, lane_id=lane_id, error=str(exc)),
                )
                failed.append({"lane_id": lane_id, "name": lane.name, "error": exc.user_message})
                remaining = [other for other in self._lanes_in_order(board_id) if other.id != lane_id]
                changeset = Changeset([DropLane(lane_id), SetSyncState(lane_id, None)])
                changeset.add(*layout_lanes(board_id, remaining))
                self.store.apply(changeset)
                continue
            await self._reconcile_lane(sent, created, mutation_id)
        return failed

    @_traced("board_id")
    async def update_board(self, board_id: str, **patch: Any) -> MutationResult:
        """Patch a board. Placeholder boards are edited locally."""
        return await self._update_board("update_board", board_id, patch)

    @_traced("board_id")
    async def assign_sprint(self, board_id: str, sprint_id: Optional[str]) -> MutationResult:
        """Move a board to a sprint (or out of one). Needs a persisted board."""
        operation = "assign_sprint"
        if self.is_temp_id(board_id) or self.store.is_placeholder(board_id):
            return self._rejected(
                operation, self._mutation_id(), TemporaryIdError("board", board_id), entity_id=board_id
            )
        return await self._update_board(operation, board_id, {"sprint_id": sprint_id})

    async def _update_board(self, operation: str, board_id: str, patch: Dict[str, Any]) -> MutationResult:
        mutation_id = self._mutation_id()
        try:
            _check_patch(patch, BOARD_PATCH_FIELDS, "board")
            if "name" in patch:
                patch["name"] = _clean_name(patch["name"], "Board")
            if "board_type" in patch:
                patch["board_type"] = _check_board_type(patch["board_type"])
            if "is_default" in patch:
                patch["is_default"] = bool(patch["is_default"])
            board = self._require_board(board_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=board_id)

        row = replace(board, lanes=[])
        updated = replace(row, **patch)
        if not patch or updated == row:
            return self._noop(operation, mutation_id, entity_id=board_id, entity=board)

        changeset = Changeset([PutBoard(updated)])
        if updated.is_default and not row.is_default:
            changeset.add(*self._default_ops(board.project_id, board_id))
        inverse = self._apply(operation, mutation_id, changeset, entity_id=board_id, board_id=board_id)
        if self.store.is_placeholder(board_id):
            return self._local(operation, mutation_id, entity_id=board_id, entity=self.store.get(BoardKey(board_id)))

        try:
            canonical = await self._call(self.backend.update_board(board_id, **patch))
        except BoardSyncError as exc:
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=board_id)

        self.store.apply(Changeset([PutBoard(canonical)]))
        await self._refresh(board_id=board_id, project_id=board.project_id)
        return self._confirmed(
            operation, mutation_id, entity_id=board_id, entity=self.store.get(BoardKey(board_id))
        )

    @_traced("board_id")
    async def delete_board(self, board_id: str) -> MutationResult:
        """Delete a persisted board and its lanes."""
        operation = "delete_board"
        mutation_id = self._mutation_id()
        try:
            if self.is_temp_id(board_id) or self.store.is_placeholder(board_id):
                raise TemporaryIdError("board", board_id)
            board = self._require_board(board_id)
        except BoardSyncError as exc:
            return self._rejected(operation, mutation_id, exc, entity_id=board_id)

        changeset = Changeset()
        for lane in board.lanes:
            changeset.add(DropLane(lane.id), SetSyncState(lane.id, SyncState.DELETING))
        changeset.add(SetLaneOrder(board_id, None))
        listed = self.store.board_ids(board.project_id)
        if listed is not None and board_id in listed:
            changeset.add(SetProjectBoards(board.project_id, tuple(b for b in listed if b != board_id)))
        changeset.add(DropBoard(board_id), SetSyncState(board_id, SyncState.DELETING))
        inverse = self._apply(operation, mutation_id, changeset, entity_id=board_id, board_id=board_id)

        try:
            await self._call(self.backend.delete_board(board_id))
        except BoardSyncError as exc:
            return self._rollback(operation, mutation_id, inverse, exc, entity_id=board_id)

        removed = Changeset([SetSyncState(board_id, SyncState.REMOVED)])
        removed.add(*(SetSyncState(lane.id, SyncState.REMOVED) for lane in board.lanes))
        self.store.apply(removed)
        await self._refresh(project_id=board.project_id)
        return self._confirmed(operation, mutation_id, entity_id=board_id, entity=None)


def build_coordinator(
    config: Config,
    backend: BoardBackend,
    bus: Optional[EventBus] = None,
    *,
    request_id: Optional[str] = None,
) -> BoardMutationCoordinator:
    """Wire a coordinator with a fresh cache that refetches from `backend`."""
    context = ServiceContext(config=config, request_id=request_id)
    store = BoardCache(loader=backend, temp_id_prefix=config.temp_id_prefix)
    return BoardMutationCoordinator(context, backend, store, bus or EventBus())
