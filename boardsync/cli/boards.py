"""
boardsync board and lane commands.

Every edit goes through the mutation coordinator, so the CLI exercises the
same optimistic path a UI would.
"""

import asyncio
import json
import sys
from dataclasses import asdict, is_dataclass
from typing import Any, Awaitable, Callable, Dict

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from boardsync.logging import EXIT_RUNTIME_ERROR, get_logger, log_extra
from boardsync.services.coordinator import BoardMutationCoordinator, build_coordinator
from boardsync.services.events import EventBus, Notification
from boardsync.services.results import MutationResult

logger = get_logger(__name__)

console = Console()


def _result_payload(result: MutationResult) -> Dict[str, Any]:
    entity = result.entity
    if is_dataclass(entity):
        entity = asdict(entity)
    elif isinstance(entity, list):
        entity = [asdict(item) if is_dataclass(item) else item for item in entity]
    return {
        "operation": result.operation,
        "outcome": result.outcome,
        "success": result.success,
        "entity_id": result.entity_id,
        "mutation_id": result.mutation_id,
        "error": result.error.user_message if result.error else None,
        "entity": entity,
        "details": result.details,
    }


def _run(
    ctx: click.Context,
    action: Callable[[BoardMutationCoordinator], Awaitable[MutationResult]],
) -> MutationResult:
    """Run one coordinator action on a fresh event loop and backend."""
    from boardsync.cli.main import get_backend

    context = ctx.obj["CONTEXT"]
    bus = EventBus()
    if not ctx.obj.get("JSON"):
        @bus.subscribe(Notification)
        def print_notification(event: Notification) -> None:
            style = "green" if event.level == "success" else "red"
            console.print(f"[{style}]{escape(event.message)}[/{style}]")

    async def go() -> MutationResult:
        backend = get_backend(context.config)
        try:
            coordinator = build_coordinator(context.config, backend, bus, request_id=context.request_id)
            return await action(coordinator)
        finally:
            await backend.aclose()

    result = asyncio.run(go())
    logger.debug(
        "cli_mutation_settled",
        extra=log_extra(mutation_id=result.mutation_id, operation=result.operation, outcome=result.outcome),
    )
    if ctx.obj.get("JSON"):
        click.echo(json.dumps(_result_payload(result), default=str))
    return result


def _run_on_board(
    ctx: click.Context,
    board_id: str,
    action: Callable[[BoardMutationCoordinator], Awaitable[MutationResult]],
) -> None:
    """Load the board into the cache, run a lane edit, exit 1 on failure."""

    async def load_then_act(coordinator: BoardMutationCoordinator) -> MutationResult:
        loaded = await coordinator.load_board(board_id)
        if not loaded.success:
            return loaded
        return await action(coordinator)

    result = _run(ctx, load_then_act)
    if not result.success:
        sys.exit(EXIT_RUNTIME_ERROR)


# =============================================================================
# Board Commands
# =============================================================================

@click.group("boards")
def board_cli():
    """Board inspection commands."""
    pass


@board_cli.command("list")
@click.argument("project_id")
@click.pass_context
def list_boards(ctx, project_id):
    """List a project's boards."""
    result = _run(ctx, lambda coordinator: coordinator.load_project_boards(project_id))
    if not result.success:
        sys.exit(EXIT_RUNTIME_ERROR)
    if ctx.obj.get("JSON"):
        return

    boards = result.entity or []
    if not boards:
        console.print("[yellow]No boards found[/yellow]")
        return

    table = Table(title=f"Boards of {escape(project_id)}")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Type", style="green")
    table.add_column("Default")
    table.add_column("Sprint")
    table.add_column("Lanes", justify="right")
    for board in boards:
        table.add_row(
            board.id,
            escape(board.name),
            board.board_type,
            "yes" if board.is_default else "",
            board.sprint_id or "-",
            str(len(board.lanes)),
        )
    console.print(table)


@board_cli.command("show")
@click.argument("board_id")
@click.pass_context
def show_board(ctx, board_id):
    """Show a board and its lanes in order."""
    result = _run(ctx, lambda coordinator: coordinator.load_board(board_id))
    if not result.success:
        sys.exit(EXIT_RUNTIME_ERROR)
    if ctx.obj.get("JSON"):
        return

    board = result.entity
    table = Table(title=f"{escape(board.name)} ({board.board_type})")
    table.add_column("#", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("WIP", justify="right")
    table.add_column("States")
    for lane in board.lanes:
        table.add_row(
            str(lane.position),
            lane.id,
            escape(lane.name),
            str(lane.wip_limit) if lane.wip_limit is not None else "-",
            ", ".join(lane.mapped_states) or "-",
        )
    console.print(table)


# =============================================================================
# Lane Commands
# =============================================================================

@click.group("lanes")
def lane_cli():
    """Lane editing commands."""
    pass


@lane_cli.command("add")
@click.argument("board_id")
@click.argument("name")
@click.option("--wip-limit", type=int, default=None, help="Maximum items in the lane")
@click.option("--state", "states", multiple=True, help="Mapped workflow state id (repeatable)")
@click.option("--position", type=int, default=None, help="Insert position (default: end)")
@click.pass_context
def add_lane(ctx, board_id, name, wip_limit, states, position):
    """Add a lane to a board."""
    _run_on_board(
        ctx,
        board_id,
        lambda coordinator: coordinator.create_lane(
            board_id, name, mapped_states=list(states), wip_limit=wip_limit, position=position
        ),
    )


@lane_cli.command("rename")
@click.argument("board_id")
@click.argument("lane_id")
@click.argument("name")
@click.pass_context
def rename_lane(ctx, board_id, lane_id, name):
    """Rename a lane."""
    _run_on_board(ctx, board_id, lambda coordinator: coordinator.update_lane(lane_id, name=name))


@lane_cli.command("remove")
@click.argument("board_id")
@click.argument("lane_id")
@click.pass_context
def remove_lane(ctx, board_id, lane_id):
    """Delete a lane; the remaining lanes are renumbered."""
    _run_on_board(ctx, board_id, lambda coordinator: coordinator.delete_lane(lane_id))


@lane_cli.command("move")
@click.argument("board_id")
@click.argument("lane_id")
@click.argument("direction", type=click.Choice(["up", "down"]))
@click.pass_context
def move_lane(ctx, board_id, lane_id, direction):
    """Move a lane one place up or down."""
    _run_on_board(ctx, board_id, lambda coordinator: coordinator.move_lane(lane_id, direction))
