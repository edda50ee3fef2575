"""
boardsync Structured Logging

Standard-library logging with a per-task context. Coordinator operations
open a context carrying the operation and its target id, and bind the
mutation id once it is minted, so cache, backend and event bus records
emitted underneath carry the same fields without threading them through
every call.
"""

import json
import logging
import os
import re
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit


STANDARD_FIELDS = ("request_id", "project_id", "board_id", "lane_id", "mutation_id")

TEXT_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "[req=%(request_id)s project=%(project_id)s board=%(board_id)s "
    "lane=%(lane_id)s mutation=%(mutation_id)s]"
)

REDACTED = "[REDACTED]"
_SECRET_KEY = re.compile(r"token|secret|passw(or)?d|api_?key|authorization|credential", re.IGNORECASE)

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"asctime", "message"}

_context: ContextVar[Mapping[str, Any]] = ContextVar("boardsync_log_context", default={})


def _compact(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


# Context

def get_log_context() -> Dict[str, Any]:
    return dict(_context.get())


def set_log_context(**fields: Any) -> None:
    """Add fields to the current context; the enclosing `log_context` scopes them."""
    _context.set({**_context.get(), **_compact(fields)})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Layer fields over the current context until the block exits."""
    token = _context.set({**_context.get(), **_compact(fields)})
    try:
        yield
    finally:
        _context.reset(token)


# Redaction

def _strip_credentials(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or "@" not in parts.netloc:
        return url
    return urlunsplit(parts._replace(netloc=parts.netloc.rpartition("@")[2]))


def redact(key: str, value: Any) -> Any:
    """Mask values under secret-looking keys and drop user:pass@ from URLs."""
    if _SECRET_KEY.search(key or ""):
        return REDACTED
    if isinstance(value, str):
        return _strip_credentials(value) if "://" in value else value
    if isinstance(value, Mapping):
        return {str(k): redact(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(key, item) for item in value]
    return value


# Handlers

class RequestIdFilter(logging.Filter):
    """
    Put the standard fields on every record.

    Precedence: explicit `extra=` values, then the log context, then "-".
    """

    def __init__(self, **defaults: Any) -> None:
        super().__init__()
        self.defaults = {**dict.fromkeys(STANDARD_FIELDS, "-"), **_compact(defaults)}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in {**self.defaults, **get_log_context()}.items():
            if key not in _RECORD_ATTRS and not hasattr(record, key):
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: standard fields first, then `extra=` values, redacted."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update((name, getattr(record, name, "-")) for name in STANDARD_FIELDS)
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps({key: redact(key, value) for key, value in payload.items()}, default=str)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Logger:
    """
    Install a single stderr handler on the root logger.

    Args:
        level: Log level (default: BOARDSYNC_LOG_LEVEL, then INFO)
        json_output: JSON lines instead of text (default: BOARDSYNC_LOG_JSON)
    """
    resolved_level = level or os.environ.get("BOARDSYNC_LOG_LEVEL") or "INFO"
    if json_output is None:
        json_output = _env_flag("BOARDSYNC_LOG_JSON")

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, str(resolved_level).upper(), logging.INFO))
    return logging.getLogger("boardsync")


def init_cli_logging(verbose: bool = False) -> logging.Logger:
    """CLI logging stays at WARNING unless --verbose or BOARDSYNC_LOG_LEVEL says otherwise."""
    return setup_logging("DEBUG" if verbose else os.environ.get("BOARDSYNC_LOG_LEVEL") or "WARNING")


def get_logger(name: str = "boardsync") -> logging.Logger:
    return logging.getLogger(name)


def log_extra(
    *,
    request_id: Optional[str] = None,
    project_id: Optional[str] = None,
    board_id: Optional[str] = None,
    lane_id: Optional[str] = None,
    mutation_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build an `extra=` payload, leaving out None so the filter can fill them.

    Example:
        logger.info("Lane confirmed", extra=log_extra(lane_id="ab12", board_id="cd34"))
    """
    return _compact(
        {
            "request_id": request_id,
            "project_id": project_id,
            "board_id": board_id,
            "lane_id": lane_id,
            "mutation_id": mutation_id,
            **extra,
        }
    )


# Standard exit codes for CLIs
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2
