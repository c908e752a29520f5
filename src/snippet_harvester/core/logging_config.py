"""structlog configuration shared by the API process and Celery workers.

Call :func:`configure_logging` once at startup.  Afterwards both APIs work
and end up in the same renderer::

    logger = logging.getLogger(__name__)          # fetchers, extractor
    logger = structlog.get_logger(__name__)       # runner, scheduler, routes
    logger.info("target_run_finished", target_id=3, outcome="ok")

The HTTP middleware stores the request id in :data:`request_id_var`; it is
copied onto every record emitted while that request is being served.
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_REDACTED = "[REDACTED]"

_SECRET_KEYS: frozenset[str] = frozenset(
    {"password", "secret", "token", "authorization", "cookie", "api_key"}
)

# user:password@ inside DSNs such as postgresql+asyncpg://u:p@host/db
_URL_CREDENTIALS_RE = re.compile(r"(?P<scheme>[a-z][a-z0-9+.\-]*://)(?P<auth>[^/@\s]+)@", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _mask_credentials(value: Any) -> Any:
    if isinstance(value, str) and "@" in value:
        return _URL_CREDENTIALS_RE.sub(rf"\g<scheme>{_REDACTED}@", value)
    return value


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Hide secret-bearing values before they reach a renderer.

    Keys containing one of :data:`_SECRET_KEYS` are replaced outright, and
    credentials embedded in connection URLs (database, Redis, broker) are
    masked in every string value, including one level of nested dicts.
    """
    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in _SECRET_KEYS):
            event_dict[key] = _REDACTED
            continue
        value = event_dict[key]
        if isinstance(value, dict):
            event_dict[key] = {
                k: _REDACTED if any(s in str(k).lower() for s in _SECRET_KEYS) else _mask_credentials(v)
                for k, v in value.items()
            }
        else:
            event_dict[key] = _mask_credentials(value)
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO", *, json_logs: bool | None = None) -> None:
    """Route stdlib and structlog records through one structlog renderer.

    Args:
        log_level: One of ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR``,
            ``CRITICAL`` (case-insensitive).  Unknown values fall back to
            ``INFO``.
        json_logs: Force JSON (``True``) or console (``False``) rendering.
            By default JSON is used unless the level is ``DEBUG``.

    Safe to call repeatedly; previously installed root handlers are replaced.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    if json_logs is None:
        json_logs = level_upper != "DEBUG"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_secrets,
    ]

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=True)
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if numeric_level > logging.DEBUG:
        for noisy in ("uvicorn.access", "httpx", "httpcore", "asyncio"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
