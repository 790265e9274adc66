"""RDAM worker service entry point.

The worker runs the expiry sweep on a fixed interval:
- Unpaid requests past the pending timeout are expired
- Published certificates past their validity are expired and removed
- Citizen notifications raised by the sweep are sent in the background
- SIGTERM/SIGINT stop the loop between records
"""

from __future__ import annotations

import asyncio
import functools
import logging
import signal
import sys
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, NoReturn

from rdam.db import close_engine, get_session_factory
from rdam.services.email import EmailNotificationService
from rdam.services.notifications import NotificationDispatcher
from rdam.services.storage import CertificateStore
from rdam.worker.handlers.expiry import run_expiry_sweep
from rdam.worker.scheduler import ScheduledTask, Scheduler, run_scheduler_loop

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from rdam.core.config import Settings

logger = logging.getLogger(__name__)

EXPIRY_TASK = "expiry_sweep"


class Worker:
    """Background process that owns the periodic expiry sweep.

    Example:
        worker = Worker(get_settings())
        await worker.start()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        store: CertificateStore | None = None,
        notifier: NotificationDispatcher | None = None,
        check_interval: float = 60.0,
        shutdown_timeout: float = 30.0,
    ) -> None:
        self.settings = settings
        self._session_factory = session_factory
        self._store = store
        self._notifier = notifier
        self._check_interval = check_interval
        self._shutdown_timeout = shutdown_timeout
        self._shutdown_event = asyncio.Event()
        self._started_at: datetime | None = None
        self.scheduler = Scheduler()

    def _build(self) -> None:
        """Create collaborators that were not injected."""
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        if self._store is None:
            self._store = CertificateStore.from_settings(self.settings.s3)
        if self._notifier is None:
            self._notifier = NotificationDispatcher(
                EmailNotificationService(self.settings.smtp),
                otp_ttl_minutes=self.settings.redis.otp_ttl_minutes,
                validity_days=self.settings.lifecycle.published_validity_days,
            )

        self.scheduler.add_task(
            ScheduledTask(
                name=EXPIRY_TASK,
                interval=timedelta(seconds=self.settings.lifecycle.sweep_interval_seconds),
                func=functools.partial(
                    run_expiry_sweep,
                    self._session_factory,
                    self._store,
                    self.settings,
                    notifier=self._notifier,
                    shutdown_event=self._shutdown_event,
                ),
            )
        )

    async def start(self) -> None:
        """Run until stop() is called."""
        self._started_at = datetime.now(UTC)
        self._build()
        logger.info(
            "Worker starting: sweep_interval=%ss, pending_timeout_days=%d, "
            "published_validity_days=%d",
            self.settings.lifecycle.sweep_interval_seconds,
            self.settings.lifecycle.pending_timeout_days,
            self.settings.lifecycle.published_validity_days,
        )

        try:
            await run_scheduler_loop(
                self.scheduler,
                check_interval=self._check_interval,
                shutdown_event=self._shutdown_event,
            )
        finally:
            if self._notifier is not None and self._notifier.pending:
                logger.info("Waiting for %d notifications", self._notifier.pending)
                await self._notifier.drain(timeout=self._shutdown_timeout)
            logger.info("Worker stopped: uptime=%s", self._get_uptime())

    async def stop(self) -> None:
        """Request graceful shutdown of the worker."""
        logger.info("Worker shutdown requested")
        self._shutdown_event.set()

    def _get_uptime(self) -> str:
        if self._started_at is None:
            return "0s"
        delta = datetime.now(UTC) - self._started_at
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}h {minutes}m {seconds}s"
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"


# Global shutdown event for signal handlers
_shutdown_event: asyncio.Event | None = None


def _handle_shutdown(signum: int, _frame: object) -> None:
    """Handle shutdown signals gracefully."""
    logger.info("Shutdown signal received (signal=%d)", signum)
    if _shutdown_event is not None:
        _shutdown_event.get_loop().call_soon_threadsafe(_shutdown_event.set)


async def _async_main(shutdown_event: asyncio.Event) -> None:
    from rdam.core.settings import get_settings

    worker = Worker(get_settings())
    worker_task = asyncio.create_task(worker.start())

    await shutdown_event.wait()
    await worker.stop()

    try:
        await asyncio.wait_for(worker_task, timeout=worker._shutdown_timeout)
    except TimeoutError:
        logger.warning("Worker did not stop within timeout, forcing shutdown")
        worker_task.cancel()
    finally:
        await close_engine()


def run() -> NoReturn:
    """Run the worker process."""
    from rdam.core.settings import get_settings

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    logger.info("RDAM Worker starting...")

    async def _run_with_event() -> None:
        global _shutdown_event
        _shutdown_event = asyncio.Event()
        await _async_main(_shutdown_event)

    try:
        asyncio.run(_run_with_event())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)

    logger.info("RDAM Worker shutdown complete")
    sys.exit(0)


if __name__ == "__main__":
    run()
