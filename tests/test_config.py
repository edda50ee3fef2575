import json
import logging
from pathlib import Path

import pytest

from boardsync.config import Config, _reset_config_for_tests, get_config, load_config
from boardsync.errors import ConfigError
from boardsync.logging import JsonFormatter, RequestIdFilter, log_context, log_extra
from boardsync.services.base import ServiceContext


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "BOARDSYNC_DB_PATH",
        "BOARDSYNC_ENV",
        "BOARDSYNC_API_URL",
        "BOARDSYNC_API_TOKEN",
        "BOARDSYNC_TEMP_ID_PREFIX",
        "BOARDSYNC_REFRESH_AFTER_MUTATION",
        "BOARDSYNC_NOTIFY_SUCCESS",
        "BOARDSYNC_CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)

    config = load_config()
    assert config.db_path == Path(".boardsync.sqlite")
    assert config.temp_id_prefix == "temp-"
    assert config.refresh_after_mutation is True
    assert config.notify_success is True
    assert config.cors_allow_origins == ["*"]
    assert not config.remote_enabled


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BOARDSYNC_DB_PATH", str(tmp_path / "x.sqlite"))
    monkeypatch.setenv("BOARDSYNC_ENV", "production")
    monkeypatch.setenv("BOARDSYNC_API_URL", "http://boards.internal:8011/")
    monkeypatch.setenv("BOARDSYNC_REFRESH_AFTER_MUTATION", "off")
    monkeypatch.setenv("BOARDSYNC_NOTIFY_SUCCESS", "0")
    monkeypatch.setenv("BOARDSYNC_CORS_ORIGINS", "https://a.example, https://b.example")

    config = load_config()
    assert config.db_path == tmp_path / "x.sqlite"
    assert config.api_url == "http://boards.internal:8011"
    assert config.remote_enabled
    assert config.refresh_after_mutation is False
    assert config.notify_success is False
    assert config.cors_allow_origins == ["https://a.example", "https://b.example"]


def test_empty_temp_prefix_is_a_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOARDSYNC_TEMP_ID_PREFIX", "  ")
    with pytest.raises(ConfigError) as excinfo:
        load_config()
    assert not excinfo.value.retryable
    assert excinfo.value.category == "config"


def test_get_config_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    _reset_config_for_tests()
    monkeypatch.setenv("BOARDSYNC_ENV", "staging")
    first = get_config()
    monkeypatch.setenv("BOARDSYNC_ENV", "local")
    assert get_config() is first
    _reset_config_for_tests()


def test_service_context_copies() -> None:
    context = ServiceContext(config=Config())
    traced = context.with_request_id("req-1").with_metadata(source="cli")
    assert context.request_id is None
    assert traced.request_id == "req-1"
    assert traced.metadata == {"source": "cli"}


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("boardsync.test", logging.INFO, __file__, 1, "Mutation applied", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_redacts_and_fills_context() -> None:
    record = _record(**log_extra(lane_id="l1", api_token="secret", url="http://user:pw@host/x", skipped=None))
    with log_context(request_id="req-9"):
        RequestIdFilter().filter(record)
    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "Mutation applied"
    assert (data["request_id"], data["lane_id"], data["board_id"]) == ("req-9", "l1", "-")
    assert data["api_token"] == "[REDACTED]"
    assert data["url"] == "http://host/x"
    assert "skipped" not in data
