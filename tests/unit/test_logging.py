"""Unit tests for the structured logging configuration.

Verifies JSON rendering, request-id propagation and secret redaction.
"""

from __future__ import annotations

import json
import logging
from io import StringIO

import structlog

from snippet_harvester.core.logging_config import configure_logging, request_id_var


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _capture(emit, log_level: str = "INFO") -> list[dict]:
    """Configure logging, redirect the root handler to a buffer and run ``emit``."""
    configure_logging(log_level, json_logs=True)
    buffer = StringIO()
    root = logging.getLogger()
    for handler in root.handlers:
        handler.stream = buffer

    emit()

    for handler in root.handlers:
        handler.flush()
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_stdlib_records_are_json(self) -> None:
        records = _capture(lambda: logging.getLogger("tests.stdlib").info("fetched %s", "page"))
        assert records[-1]["event"] == "fetched page"
        assert records[-1]["level"] == "info"
        assert "timestamp" in records[-1]

    def test_structlog_records_carry_fields(self) -> None:
        records = _capture(lambda: structlog.get_logger("tests.structlog").info("target_run_finished", target_id=3))
        assert records[-1]["event"] == "target_run_finished"
        assert records[-1]["target_id"] == 3
        assert records[-1]["logger"] == "tests.structlog"

    def test_level_filtering(self) -> None:
        records = _capture(lambda: logging.getLogger("tests.level").info("hidden"), log_level="WARNING")
        assert records == []

    def test_request_id_is_injected(self) -> None:
        token = request_id_var.set("req-123")
        try:
            records = _capture(lambda: structlog.get_logger("tests.rid").info("handled"))
        finally:
            request_id_var.reset(token)
        assert records[-1]["request_id"] == "req-123"


class TestRedaction:
    def test_secret_keys_are_redacted(self) -> None:
        records = _capture(lambda: structlog.get_logger("tests.redact").info("login", password="hunter2"))
        assert records[-1]["password"] == "[REDACTED]"

    def test_url_credentials_are_masked(self) -> None:
        records = _capture(
            lambda: structlog.get_logger("tests.redact").info(
                "connecting", dsn="postgresql+asyncpg://harvester:s3cret@db:5432/app"
            )
        )
        assert "s3cret" not in records[-1]["dsn"]
        assert records[-1]["dsn"].endswith("@db:5432/app")

    def test_nested_dict_values(self) -> None:
        records = _capture(
            lambda: structlog.get_logger("tests.redact").info(
                "config", settings={"redis_url": "redis://user:pw@cache:6379/0", "api_key": "abc"}
            )
        )
        assert records[-1]["settings"]["api_key"] == "[REDACTED]"
        assert "pw@" not in records[-1]["settings"]["redis_url"]
