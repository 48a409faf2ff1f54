"""SIGTERM / SIGINT handling for the watcher.

The first signal requests a graceful stop: the IDLE wait and any
reconnect delay end at once, while a batch in progress runs to
completion.  A second signal calls *on_force* so a batch stuck on a slow
classifier can be abandoned.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

import structlog

logger = structlog.get_logger()

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(
    shutdown_event: asyncio.Event,
    *,
    on_force: Callable[[], None] | None = None,
) -> Callable[[], None]:
    """Register handlers on the running loop and return a function that removes them."""
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        if not shutdown_event.is_set():
            logger.info("shutdown_signal_received", signal=sig.name)
            shutdown_event.set()
        elif on_force is not None:
            logger.warning("shutdown_forced", signal=sig.name)
            on_force()
        else:
            logger.info("shutdown_already_requested", signal=sig.name)

    for sig in HANDLED_SIGNALS:
        loop.add_signal_handler(sig, _handle, sig)

    def remove() -> None:
        for sig in HANDLED_SIGNALS:
            loop.remove_signal_handler(sig)

    return remove
