"""Post-commit citizen notifications.

The lifecycle coordinator calls a Notifier only after its transaction has
committed. NotificationDispatcher turns each call into a background task
and returns immediately; the caller never awaits email delivery and a
failure is only logged. Task references are retained until completion so
they are not garbage-collected mid-flight, and drain() lets a process wait
for in-flight messages on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

from rdam.services.email import hash_email

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from rdam.services.email import EmailNotificationService
    from rdam.services.repository import RequestRecord

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Receives lifecycle events worth telling the citizen about."""

    def verification_code(self, record: RequestRecord, code: str) -> None: ...

    def payment_confirmed(self, record: RequestRecord) -> None: ...

    def certificate_available(self, record: RequestRecord, download_url: str) -> None: ...

    def request_expired(self, record: RequestRecord) -> None: ...


class NotificationDispatcher:
    """Notifier that sends emails as fire-and-forget tasks."""

    def __init__(
        self,
        email_service: EmailNotificationService,
        *,
        otp_ttl_minutes: int = 15,
        validity_days: int = 65,
    ) -> None:
        self._email = email_service
        self._otp_ttl_minutes = otp_ttl_minutes
        self._validity_days = validity_days
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def verification_code(self, record: RequestRecord, code: str) -> None:
        self._dispatch(
            "verification_code",
            record,
            self._email.send_verification_code(
                record.email, record.tramite_number, code, ttl_minutes=self._otp_ttl_minutes
            ),
        )

    def payment_confirmed(self, record: RequestRecord) -> None:
        self._dispatch(
            "payment_confirmed",
            record,
            self._email.send_payment_confirmed(record.email, record.tramite_number),
        )

    def certificate_available(self, record: RequestRecord, download_url: str) -> None:
        self._dispatch(
            "certificate_available",
            record,
            self._email.send_certificate_available(
                record.email, record.tramite_number, download_url, self._validity_days
            ),
        )

    def request_expired(self, record: RequestRecord) -> None:
        self._dispatch(
            "request_expired",
            record,
            self._email.send_request_expired(record.email, record.tramite_number),
        )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight notifications to finish."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    def _dispatch(
        self, name: str, record: RequestRecord, coro: Coroutine[Any, Any, Any]
    ) -> None:
        task = asyncio.create_task(coro, name=f"notify-{name}-{record.tramite_number}")
        self._tasks.add(task)
        task.add_done_callback(self._make_done_callback(name, record))

    def _make_done_callback(
        self, name: str, record: RequestRecord
    ) -> Callable[[asyncio.Task[Any]], None]:
        recipient_hash = hash_email(record.email)[:16]

        def _done(task: asyncio.Task[Any]) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                logger.warning(
                    "Notification cancelled: %s tramite=%s", name, record.tramite_number
                )
                return
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Notification failed: %s tramite=%s",
                    name,
                    record.tramite_number,
                    exc_info=exc,
                    extra={"recipient_hash": recipient_hash},
                )

        return _done
