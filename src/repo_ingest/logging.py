from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from pathlib import Path

_LOGGING_CONFIGURED = False

# Event keys whose values must never reach a log sink.
SECRET_KEYS = frozenset({"token", "authorization", "password", "secret"})


def redact_secrets(
    _logger: Any,  # noqa: ANN401
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor masking credential-like keys of an event."""
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _handler_for(filename: str | Path | None) -> logging.Handler:
    if filename:
        return logging.FileHandler(str(filename), encoding="utf-8")
    return logging.StreamHandler(sys.stderr)


def setup_logging(filename: str | Path | None = None, *, level: int = logging.INFO) -> structlog.BoundLogger:
    """Set up structured JSON logging for the repo_ingest package.

    The first call installs a stderr handler. Passing a filename later (the
    CLI does it for `--log-file`) replaces the handlers with a file handler;
    loggers already bound at import time keep working, since they resolve
    through the stdlib `logging` tree.

    Args:
        filename: Optional path to a log file. If None, logs go to stderr.
        level: Minimum log level to emit.

    Returns:
        A structlog logger named "repo_ingest".
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED and not filename:
        return structlog.get_logger("repo_ingest")

    logging.basicConfig(
        level=level,
        handlers=[_handler_for(filename)],
        format="%(message)s",
        force=bool(filename),
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _LOGGING_CONFIGURED = True
    return structlog.get_logger("repo_ingest")


logger = setup_logging()
