"""MailWatcher: wires up the pipeline and runs the watch loop."""

from __future__ import annotations

import asyncio
import contextlib
import time

import structlog
import uvicorn

from .classifier import ClassifierAdapter, LLMClassifier
from .config import WatcherConfig
from .dedup import DedupGate
from .fetcher import MessageFetcher
from .health import create_health_app
from .imap_client import AsyncImapClient
from .logging import setup_logging
from .models import WatcherStatus
from .notifier import NotifierAdapter, TelegramNotifier
from .pipeline import PipelineCoordinator
from .session import SessionManager
from .shutdown import install_signal_handlers
from .store import ProcessedRecordStore

logger = structlog.get_logger()


class MailWatcher:
    """Watches one mailbox and alerts on important mail.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup`:

    * the watch loop (session events feeding the coordinator)
    * FastAPI health server (skipped when ``health_port`` is 0)

    The classifier, notifier and store default to the LLM, Telegram and
    SQLAlchemy implementations built from *config*.
    """

    def __init__(
        self,
        config: WatcherConfig,
        classifier: ClassifierAdapter | None = None,
        notifier: NotifierAdapter | None = None,
        store: ProcessedRecordStore | None = None,
        client: AsyncImapClient | None = None,
    ) -> None:
        self.config = config
        self.status: WatcherStatus = WatcherStatus.STARTING
        self.start_time: float = time.monotonic()
        self.failed = False

        self._shutdown_event = asyncio.Event()
        self._watch_task: asyncio.Task | None = None
        self.client = client or AsyncImapClient(config.imap)
        self.store = store or ProcessedRecordStore(config.store)
        self.classifier = classifier or LLMClassifier(config.classifier)
        self.notifier = notifier or TelegramNotifier(config.telegram, config.alert_address)

        self.session = SessionManager(self.client, config.imap, self._shutdown_event)
        self.coordinator = PipelineCoordinator(
            MessageFetcher(self.client),
            DedupGate(self.store),
            self.store,
            self.classifier,
            self.notifier,
            retry_config=config.retry,
            lock=self.session.mailbox_lock,
        )

    def shutdown(self) -> None:
        """Request a graceful stop; the batch in progress is completed first."""
        self._shutdown_event.set()

    def _force_stop(self) -> None:
        """Abandon the batch in progress (second signal)."""
        if self._watch_task is not None and not self._watch_task.done():
            self._watch_task.cancel()

    def health_details(self) -> dict[str, object]:
        return {
            "imap_host": self.config.imap.host,
            "mailbox": self.config.imap.mailbox,
            "imap_connected": self.client.connected,
            "exists": self.session.exists,
            "last_uid": self.session.high_water,
            "reconnects": self.session.reconnects,
            **self.coordinator.counters(),
        }

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    async def _run_watch_loop(self) -> None:
        """Feed every wake-up event from the session into the coordinator."""
        logger.info("watch_loop_started", mailbox=self.config.imap.mailbox)
        self.status = WatcherStatus.RUNNING
        try:
            async with contextlib.aclosing(self.session.events()) as events:
                async for event in events:
                    outcomes = await self.coordinator.process_batch(event.uids)
                    logger.info(
                        "batch_processed",
                        uids=len(event.uids),
                        outcomes=sorted({outcome.value for outcome in outcomes}),
                    )
        except Exception:
            self.status = WatcherStatus.DEGRADED
            logger.exception("watch_loop_error", mailbox=self.config.imap.mailbox)
            raise
        finally:
            logger.info("watch_loop_stopped", mailbox=self.config.imap.mailbox)

    # ------------------------------------------------------------------
    # Health server
    # ------------------------------------------------------------------

    async def _run_health_server(self) -> None:
        """Start the FastAPI health server and shut it down on signal."""
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        # Run until the shutdown event fires
        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start all subsystems and run until shutdown::

            asyncio.run(watcher.run())
        """
        setup_logging(json=self.config.log_json, level=self.config.log_level, service=self.config.name)
        remove_signal_handlers = install_signal_handlers(self._shutdown_event, on_force=self._force_stop)
        self.start_time = time.monotonic()

        logger.info("watcher_starting", mailbox=self.config.imap.mailbox)

        started: list[ClassifierAdapter | NotifierAdapter | ProcessedRecordStore] = []
        try:
            for resource in (self.store, self.classifier, self.notifier):
                await resource.start()
                started.append(resource)

            async with asyncio.TaskGroup() as tg:
                self._watch_task = tg.create_task(self._run_watch_loop())
                if self.config.health_port:
                    tg.create_task(self._run_health_server())
        except* Exception:
            self.status = WatcherStatus.DEGRADED
            self.failed = True
            logger.exception("watcher_task_group_error")
        finally:
            self.status = WatcherStatus.STOPPING
            self._shutdown_event.set()
            for resource in reversed(started):
                await resource.stop()
            remove_signal_handlers()
            self.status = WatcherStatus.STOPPED
            logger.info("watcher_stopped")
