"""Structured logging singleton.

Configured from os.environ (``LOG_LEVEL``, ``LOG_FORMAT``) rather than
Settings, so modules can log while Settings is still being constructed.

``LOG_FORMAT=json`` switches to one JSON object per line for log shippers;
anything else gets the dev console renderer.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

# Event fields whose values are never written out verbatim.
_SECRET_FIELD_MARKERS = ("token", "api_key", "secret", "password")


def _mask_secret_fields(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, str) and any(m in key.lower() for m in _SECRET_FIELD_MARKERS):
            event_dict[key] = "***"
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.environ.get("LOG_FORMAT", "console").lower()

    # stdlib root logger first, so filter_by_level sees the configured level
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _mask_secret_fields,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    else:
        processors.append(structlog.dev.set_exc_info)
    processors.append(_renderer(log_format))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger()


logger = _setup_logging()


def is_verbose() -> bool:
    """True when LOG_LEVEL asks for debug-or-finer output (full run logs)."""
    return os.environ.get("LOG_LEVEL", "").lower() in ("debug", "trace")


def run_context(**fields: object):
    """Bind *fields* to every log line emitted inside the ``with`` block."""
    return structlog.contextvars.bound_contextvars(**fields)


def _uncaught_exception_handler(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _uncaught_exception_handler
