"""Entry point for the mailbox watcher.

Usage::

    python -m pingpal_email

All settings come from environment variables (see :mod:`.config`).
"""

from __future__ import annotations

import asyncio
import sys

import structlog

from .config import load_config
from .errors import ConfigError
from .logging import setup_logging

logger = structlog.get_logger()


def main() -> None:
    setup_logging()
    try:
        config = load_config()
    except ConfigError as exc:
        logger.error("config_invalid", error=str(exc))
        sys.exit(2)

    from .watcher import MailWatcher

    watcher = MailWatcher(config)
    asyncio.run(watcher.run())
    if watcher.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
