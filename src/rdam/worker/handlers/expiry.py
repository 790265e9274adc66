"""Expiry sweep for certificate requests.

Two time limits apply:
- PENDING requests older than pending_timeout_days are EXPIRED.
- PUBLISHED certificates issued more than published_validity_days ago are
  moved to PUBLISHED_EXPIRED and their stored file is removed.

Every state change goes through the LifecycleCoordinator, so a sweep can
run while citizens, operators and the payment webhook act on the same
records: a record that changed since it was read fails its compare-and-swap
and is skipped. A failing record never aborts the batch. The shutdown event
is checked between records, never in the middle of one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from rdam.services.storage import StorageError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from rdam.core.config import Settings
    from rdam.services.lifecycle import LifecycleCoordinator
    from rdam.services.notifications import Notifier
    from rdam.services.repository import RequestRecord, RequestRepository
    from rdam.services.storage import CertificateStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


@dataclass
class SweepResult:
    """Counts of one sweep.

    Attributes:
        pending_expired: Unpaid requests moved to EXPIRED.
        published_expired: Certificates moved to PUBLISHED_EXPIRED.
        failed: Records that raised and were skipped.
        files_not_removed: Storage keys that could not be deleted.
    """

    pending_expired: int = 0
    published_expired: int = 0
    failed: int = 0
    files_not_removed: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "pending_expired": self.pending_expired,
            "published_expired": self.published_expired,
        }


class ExpirySweeper:
    """Stateless pass over time-expired requests.

    Example:
        sweeper = ExpirySweeper(
            coordinator,
            repository,
            store,
            pending_timeout_days=60,
            published_validity_days=65,
        )
        result = await sweeper.run()
    """

    def __init__(
        self,
        coordinator: LifecycleCoordinator,
        repository: RequestRepository,
        store: CertificateStore,
        *,
        pending_timeout_days: int,
        published_validity_days: int,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._repo = repository
        self._store = store
        self._pending_timeout = timedelta(days=pending_timeout_days)
        self._published_validity = timedelta(days=published_validity_days)
        self._batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(UTC))
        self._shutdown_event = shutdown_event

    async def run(self) -> SweepResult:
        """Expire unpaid requests, then published certificates."""
        now = self._clock()
        result = SweepResult()

        result.pending_expired = await self._sweep(
            "pending",
            lambda: self._repo.find_pending_created_before(
                now - self._pending_timeout, self._batch_size
            ),
            self._expire_pending,
            result,
        )
        if not self._stopping():
            result.published_expired = await self._sweep(
                "published",
                lambda: self._repo.find_published_issued_before(
                    now - self._published_validity, self._batch_size
                ),
                lambda record: self._expire_published(record, result),
                result,
            )

        logger.info(
            "Expiry sweep complete: pending_expired=%d, published_expired=%d, failed=%d",
            result.pending_expired,
            result.published_expired,
            result.failed,
        )
        return result

    async def _sweep(
        self,
        kind: str,
        fetch: Callable[[], Awaitable[list[RequestRecord]]],
        expire: Callable[[RequestRecord], Awaitable[Any]],
        result: SweepResult,
    ) -> int:
        """Process batches until one comes back short or makes no progress."""
        expired = 0
        while not self._stopping():
            batch = await fetch()
            progressed = 0
            for record in batch:
                if self._stopping():
                    logger.info("Shutdown requested, stopping %s sweep", kind)
                    break
                try:
                    await expire(record)
                except Exception as e:
                    result.failed += 1
                    logger.exception(
                        "Failed to expire %s request: tramite=%s, error=%s",
                        kind,
                        record.tramite_number,
                        e,
                    )
                    continue
                progressed += 1
            expired += progressed
            if len(batch) < self._batch_size or progressed == 0:
                break
        return expired

    async def _expire_pending(self, record: RequestRecord) -> None:
        await self._coordinator.expire_pending(record)
        logger.info("Request expired unpaid: tramite=%s", record.tramite_number)

    async def _expire_published(self, record: RequestRecord, result: SweepResult) -> None:
        """Expire first, then remove the file.

        A record that lost a race (for instance a token regeneration that
        restarted its validity) keeps its file. A failed deletion is logged
        and leaves an orphaned object, never a record stuck in PUBLISHED.
        """
        await self._coordinator.expire_published(record)
        if record.certificate_ref:
            try:
                await asyncio.to_thread(self._store.delete, record.certificate_ref)
            except StorageError as e:
                result.files_not_removed.append(record.certificate_ref)
                logger.warning(
                    "Could not remove expired certificate: tramite=%s, key=%s, error=%s",
                    record.tramite_number,
                    record.certificate_ref,
                    e.message,
                )
        logger.info("Certificate expired: tramite=%s", record.tramite_number)

    def _stopping(self) -> bool:
        return self._shutdown_event is not None and self._shutdown_event.is_set()


async def run_expiry_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    store: CertificateStore,
    settings: Settings,
    *,
    notifier: Notifier | None = None,
    shutdown_event: asyncio.Event | None = None,
    coordinator_factory: Callable[[AsyncSession], tuple[LifecycleCoordinator, RequestRepository]]
    | None = None,
) -> dict[str, int]:
    """Run one sweep in a fresh database session.

    Returns:
        {"pending_expired": n, "published_expired": m}
    """
    from rdam.services.lifecycle import LifecycleCoordinator
    from rdam.services.numbering import DatabaseSequenceSource, TramiteNumberGenerator
    from rdam.services.repository import RequestRepository

    async with session_factory() as session:
        if coordinator_factory is not None:
            coordinator, repository = coordinator_factory(session)
        else:
            repository = RequestRepository(session)
            coordinator = LifecycleCoordinator(
                repository,
                numbers=TramiteNumberGenerator(
                    DatabaseSequenceSource(session), settings.lifecycle.tramite_prefix
                ),
                settings=settings.lifecycle,
                public_base_url=settings.public_base_url,
                notifier=notifier,
            )
        sweeper = ExpirySweeper(
            coordinator,
            repository,
            store,
            pending_timeout_days=settings.lifecycle.pending_timeout_days,
            published_validity_days=settings.lifecycle.published_validity_days,
            shutdown_event=shutdown_event,
        )
        result = await sweeper.run()
    return result.as_dict()
