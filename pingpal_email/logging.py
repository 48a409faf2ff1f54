"""structlog setup for the watcher process.

Every line carries the service name.  Credentials never reach the
output: values under secret-looking keys are masked, and message body
text is replaced by its length.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Chatty third-party loggers that would otherwise dump IMAP traffic at DEBUG
_NOISY_LOGGERS = ("imapclient", "httpx", "httpcore", "aiosqlite")

_SECRET_KEYS = frozenset({"password", "api_key", "bot_token", "token", "authorization"})
_BODY_KEYS = frozenset({"body", "body_text"})

MASK = "***"


def redact_event(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: mask secrets and drop message bodies."""
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = MASK
    for key in _BODY_KEYS.intersection(event_dict):
        event_dict[key] = f"<{len(str(event_dict[key]))} chars>"
    return event_dict


def setup_logging(*, json: bool = True, level: str = "INFO", service: str | None = None) -> None:
    """Route structlog through stdlib logging to stdout.

    *json* selects JSON lines over the console renderer.  *service*, when
    given, is bound as a context variable so that tasks started afterwards
    inherit it.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_event,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.INFO))

    structlog.contextvars.clear_contextvars()
    if service:
        structlog.contextvars.bind_contextvars(service=service)
