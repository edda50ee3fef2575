"""
boardsync CLI

Click-based command-line interface for boardsync.
Provides commands for the database, the API server, and board/lane edits.
"""

import json
import sys
from pathlib import Path

import click

from boardsync import __version__
from boardsync.errors import ConfigError
from boardsync.logging import EXIT_CONFIG_ERROR, get_logger, init_cli_logging

logger = get_logger(__name__)


def get_service_context():
    """Create a ServiceContext for CLI operations."""
    from boardsync.config import load_config
    from boardsync.services.base import ServiceContext

    return ServiceContext(config=load_config())


def get_db():
    """Get database connection."""
    from boardsync.config import load_config
    from boardsync.db.database import Database

    config = load_config()
    return Database(Path(config.db_path))


def get_backend(config):
    """HTTP backend when an API URL is configured, otherwise the local database."""
    if config.remote_enabled:
        from boardsync.backend.http import HttpBoardBackend

        return HttpBoardBackend(config.api_url, token=config.api_token)

    from boardsync.backend.local import LocalBoardBackend

    db = get_db()
    db.init_schema()
    return LocalBoardBackend(db)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx, verbose, json_output):
    """boardsync - optimistic board and lane management."""
    ctx.ensure_object(dict)
    ctx.obj["VERBOSE"] = verbose
    ctx.obj["JSON"] = json_output

    init_cli_logging(verbose)

    try:
        ctx.obj["CONTEXT"] = get_service_context()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)


from boardsync.cli.boards import board_cli, lane_cli  # noqa: E402

cli.add_command(board_cli)
cli.add_command(lane_cli)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"boardsync v{__version__}")


@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create the SQLite schema (safe to run repeatedly)."""
    db = get_db()
    db.init_schema()
    logger.info("database_initialized", extra={"db_path": str(db.db_path)})
    if ctx.obj.get("JSON"):
        click.echo(json.dumps({"success": True, "db_path": str(db.db_path)}))
    else:
        click.echo(f"Database ready at {db.db_path}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", default=8011, show_default=True, type=int, help="Bind port")
def serve(host, port):
    """Run the board API with uvicorn."""
    import uvicorn

    uvicorn.run("boardsync.api.app:app", host=host, port=port)


def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
