"""
boardsync Configuration

Pydantic-backed configuration loaded from environment variables.
Uses BOARDSYNC_ prefix for all environment variables.
"""

import os
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from boardsync.errors import ConfigError


class Config(BaseModel):
    """
    Pydantic-backed configuration loaded from environment variables.

    Key env vars:
    - BOARDSYNC_DB_PATH (default: .boardsync.sqlite)
    - BOARDSYNC_ENV (default: local)
    - BOARDSYNC_API_URL (optional; CLI talks HTTP when set)
    - BOARDSYNC_API_TOKEN (optional bearer token)
    - BOARDSYNC_LOG_LEVEL / BOARDSYNC_LOG_JSON
    - BOARDSYNC_TEMP_ID_PREFIX (default: temp-)
    - BOARDSYNC_REFRESH_AFTER_MUTATION (default: true)
    - BOARDSYNC_NOTIFY_SUCCESS (default: true)
    """

    # Database
    db_path: Path = Field(default=Path(".boardsync.sqlite"))

    # Environment
    environment: str = Field(default="local")
    api_url: Optional[str] = Field(default=None)
    api_token: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Coordinator behaviour
    temp_id_prefix: str = Field(default="temp-")
    refresh_after_mutation: bool = Field(default=True)
    notify_success: bool = Field(default=True)

    # API / web
    cors_allow_origins: List[str] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def remote_enabled(self) -> bool:
        """Check if an HTTP board API is configured."""
        return bool(self.api_url)


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _parse_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    if value.strip() == "*":
        return ["*"]
    return [v.strip() for v in value.split(",") if v.strip()]


def load_config() -> Config:
    """
    Load boardsync configuration from environment.

    Raises:
        ConfigError: If the placeholder id prefix is empty
    """
    env = os.environ.get("BOARDSYNC_ENV", "local")
    cors = _parse_csv(os.environ.get("BOARDSYNC_CORS_ORIGINS"))
    if not cors and env == "local":
        cors = ["*"]

    temp_id_prefix = os.environ.get("BOARDSYNC_TEMP_ID_PREFIX", "temp-")
    if not temp_id_prefix.strip():
        raise ConfigError(
            "BOARDSYNC_TEMP_ID_PREFIX must not be empty",
            metadata={"env": "BOARDSYNC_TEMP_ID_PREFIX"},
        )

    api_url = os.environ.get("BOARDSYNC_API_URL") or None
    return Config(
        db_path=Path(os.environ.get("BOARDSYNC_DB_PATH", ".boardsync.sqlite")).expanduser(),
        environment=env,
        api_url=api_url.rstrip("/") if api_url else None,
        api_token=os.environ.get("BOARDSYNC_API_TOKEN") or None,
        log_level=os.environ.get("BOARDSYNC_LOG_LEVEL", "INFO"),
        log_json=_parse_bool(os.environ.get("BOARDSYNC_LOG_JSON")),
        temp_id_prefix=temp_id_prefix,
        refresh_after_mutation=_parse_bool(
            os.environ.get("BOARDSYNC_REFRESH_AFTER_MUTATION"), default=True
        ),
        notify_success=_parse_bool(os.environ.get("BOARDSYNC_NOTIFY_SUCCESS"), default=True),
        cors_allow_origins=cors,
    )


# Singleton config instance (lazy loaded)
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get or create the singleton config instance."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def _reset_config_for_tests() -> None:
    """Reset the global config cache (tests only)."""
    global _config
    with _config_lock:
        _config = None
