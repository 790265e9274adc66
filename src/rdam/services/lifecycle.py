"""Certificate request lifecycle coordinator.

Every state-changing operation on a certificate request goes through
LifecycleCoordinator. Each operation:

1. Reads the current record and its version.
2. Validates the transition against rdam.services.transitions, or returns
   early for cases that need no transition (duplicate webhooks).
3. Writes with compare-and-swap on the version read in step 1. A lost race
   raises ConcurrentModificationError; the coordinator never retries.
4. Stages exactly one state history entry in the same transaction, then
   commits. Any error rolls the whole unit of work back.

Citizen notifications are handed to the Notifier only after the commit and
are never awaited.

    pending -> paid -> published -> published_expired
       |        |
       +--------+---> expired
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from rdam.core.config import PaymentMode
from rdam.db.models.base import OperationType, RequestState
from rdam.services.errors import (
    DuplicateTramiteNumberError,
    InvalidStateError,
    InvalidStateTransitionError,
    JurisdictionMismatchError,
    JurisdictionNotFoundError,
)
from rdam.services.payments import PaymentOrder, to_cents
from rdam.services.transitions import is_valid_transition

if TYPE_CHECKING:
    from decimal import Decimal
    from uuid import UUID

    from rdam.core.config import LifecycleSettings
    from rdam.services.audit_log import OperationRecorder
    from rdam.services.authz import ActingOperator
    from rdam.services.notifications import Notifier
    from rdam.services.numbering import TramiteNumberGenerator
    from rdam.services.payments import PaymentGateway
    from rdam.services.repository import RequestPage, RequestRecord, RequestRepository

logger = logging.getLogger(__name__)

# Attempts at a fresh trámite number when the generated one is already taken
MAX_NUMBER_ATTEMPTS = 3

DOWNLOAD_TOKEN_BYTES = 32  # 64 hex characters

DOWNLOAD_PATH = "/api/v1/certificados/"


class PaymentRecordResult(str, Enum):
    """Outcome of recording a payment notification."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"


@dataclass(frozen=True, slots=True)
class StatusView:
    """Public status of a request.

    Attributes:
        tramite_number: Public request identifier.
        state: Current lifecycle state.
        jurisdiction_id: Jurisdiction the request belongs to.
        jurisdiction_name: Display name, None if the jurisdiction is inactive.
        created_at: Submission time.
        download_link: Present only while the certificate is published.
    """

    tramite_number: str
    state: RequestState
    jurisdiction_id: int
    jurisdiction_name: str | None
    created_at: datetime
    download_link: str | None = None


def generate_download_token() -> str:
    return secrets.token_hex(DOWNLOAD_TOKEN_BYTES)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LifecycleCoordinator:
    """Sole entry point for state changes of certificate requests.

    One coordinator wraps one repository, and therefore one database
    session; create one per HTTP request or per sweep.

    Example:
        coordinator = LifecycleCoordinator(
            RequestRepository(session),
            numbers=TramiteNumberGenerator(DatabaseSequenceSource(session)),
            settings=settings.lifecycle,
            public_base_url=settings.public_base_url,
        )
        record = await coordinator.create("20123456789", "x@y.com", 2)
    """

    def __init__(
        self,
        repository: RequestRepository,
        *,
        numbers: TramiteNumberGenerator,
        settings: LifecycleSettings,
        public_base_url: str,
        notifier: Notifier | None = None,
        operations: OperationRecorder | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repository
        self._numbers = numbers
        self._settings = settings
        self._public_base_url = public_base_url.rstrip("/")
        self._notifier = notifier
        self._operations = operations
        self._clock = clock

    # -------------------------------------------------------------------------
    # Citizen operations
    # -------------------------------------------------------------------------

    async def create(self, subject_id: str, email: str, jurisdiction_id: int) -> RequestRecord:
        """Create a PENDING request with a fresh trámite number.

        Raises:
            JurisdictionNotFoundError: If the jurisdiction is unknown or inactive.
            DuplicateTramiteNumberError: If no free number was found.
        """
        async with self._atomic():
            if await self._repo.get_jurisdiction(jurisdiction_id) is None:
                raise JurisdictionNotFoundError(jurisdiction_id)

            now = self._clock()
            for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
                tramite_number = await self._numbers.next_number(now.date())
                try:
                    record = await self._repo.insert(
                        tramite_number=tramite_number,
                        subject_id=subject_id,
                        email=email,
                        jurisdiction_id=jurisdiction_id,
                        created_at=now,
                    )
                except DuplicateTramiteNumberError:
                    if attempt == MAX_NUMBER_ATTEMPTS:
                        raise
                    logger.warning(
                        "Trámite number collision, retrying: %s (attempt %d)",
                        tramite_number,
                        attempt,
                    )
                    continue
                break

        logger.info(
            "Request created",
            extra={
                "request_id": str(record.request_id),
                "tramite_number": record.tramite_number,
                "jurisdiction_id": jurisdiction_id,
            },
        )
        return record

    async def get_status(self, tramite_number: str) -> StatusView:
        """Public status; the download link is present only while PUBLISHED.

        Raises:
            RequestNotFoundError: If no request has this number.
        """
        record = await self._repo.get_by_tramite(tramite_number)
        jurisdiction = await self._repo.get_jurisdiction(record.jurisdiction_id)

        download_link = None
        if record.state is RequestState.PUBLISHED and record.download_token:
            download_link = self.download_url(record.download_token)

        return StatusView(
            tramite_number=record.tramite_number,
            state=record.state,
            jurisdiction_id=record.jurisdiction_id,
            jurisdiction_name=jurisdiction.name if jurisdiction else None,
            created_at=record.created_at,
            download_link=download_link,
        )

    async def create_payment_order(
        self, request_id: UUID, gateway: PaymentGateway
    ) -> PaymentOrder:
        """Create the payment order of a PENDING request.

        The order reference is set at most once: if the request already has
        one, the same order is returned.

        Raises:
            RequestNotFoundError: If the request does not exist.
            InvalidStateError: If the request is not PENDING.
            PaymentGatewayUnavailableError: If the gateway cannot create orders.
            ConcurrentModificationError: If the request changed meanwhile.
        """
        amount_cents = to_cents(self._settings.fee_amount)

        async with self._atomic():
            record = await self._repo.get(request_id)
            self._require_state(record, (RequestState.PENDING,), "create a payment order")

            if record.payment_order_ref is not None:
                return PaymentOrder(
                    order_ref=record.payment_order_ref,
                    payment_url=gateway.payment_url(record.payment_order_ref),
                    amount_cents=amount_cents,
                    simulated=gateway.mode is PaymentMode.SIM,
                )

            order = gateway.create_order(record.tramite_number, self._settings.fee_amount)
            await self._repo.compare_and_swap(
                record, changes={"payment_order_ref": order.order_ref}
            )

        logger.info(
            "Payment order assigned",
            extra={
                "request_id": str(request_id),
                "tramite_number": record.tramite_number,
                "order_ref": order.order_ref,
            },
        )
        return order

    # -------------------------------------------------------------------------
    # Payment gateway
    # -------------------------------------------------------------------------

    async def record_payment(
        self, payment_order_ref: str, approved: bool, amount: Decimal
    ) -> PaymentRecordResult:
        """Apply a payment notification.

        A request that is no longer PENDING has already absorbed a
        notification for this order; the call is then a no-op.

        Raises:
            RequestNotFoundError: If no request holds the order reference.
            ConcurrentModificationError: If another writer won the race.
        """
        async with self._atomic():
            record = await self._repo.get_by_payment_ref(payment_order_ref)
            if record.state is not RequestState.PENDING:
                logger.info(
                    "Duplicate payment notification ignored",
                    extra={
                        "tramite_number": record.tramite_number,
                        "order_ref": payment_order_ref,
                        "state": record.state.value,
                    },
                )
                return PaymentRecordResult.DUPLICATE

            if approved:
                updated = await self._transition(
                    record,
                    RequestState.PAID,
                    changes={"payment_amount": amount, "paid_at": self._clock()},
                )
            else:
                updated = await self._transition(record, RequestState.EXPIRED)

        if self._notifier is not None:
            if approved:
                self._notifier.payment_confirmed(updated)
            else:
                self._notifier.request_expired(updated)
        return PaymentRecordResult.APPLIED

    # -------------------------------------------------------------------------
    # Operator operations
    # -------------------------------------------------------------------------

    async def publish_certificate(
        self,
        request_id: UUID,
        storage_ref: str,
        download_token: str,
        operator: ActingOperator,
    ) -> RequestRecord:
        """Publish the uploaded certificate of a PAID request.

        Raises:
            RequestNotFoundError: If the request does not exist.
            InvalidStateError: If the request is not PAID.
            JurisdictionMismatchError: If the operator may not act on it.
            ConcurrentModificationError: If the request changed meanwhile.
        """
        async with self._atomic():
            record = await self._repo.get(request_id)
            self._require_state(record, (RequestState.PAID,), "publish a certificate")
            operator.require(record.jurisdiction_id)

            updated = await self._transition(
                record,
                RequestState.PUBLISHED,
                changes={
                    "certificate_ref": storage_ref,
                    "download_token": download_token,
                    "issued_at": self._clock(),
                },
                actor_id=operator.operator_id,
            )
            await self._record_operation(
                OperationType.CERTIFICATE_PUBLISHED,
                updated,
                operator,
                {"certificate_ref": storage_ref},
            )

        if self._notifier is not None:
            self._notifier.certificate_available(updated, self.download_url(download_token))
        return updated

    async def regenerate_download_token(self, request_id: UUID, operator: ActingOperator) -> str:
        """Replace the download token and restart the validity window.

        The state is unchanged and the previous token stops resolving.

        Raises:
            RequestNotFoundError: If the request does not exist.
            InvalidStateError: If the request is not PUBLISHED or PUBLISHED_EXPIRED.
            JurisdictionMismatchError: If the operator may not act on it.
            ConcurrentModificationError: If the request changed meanwhile.
        """
        async with self._atomic():
            record = await self._repo.get(request_id)
            self._require_state(
                record,
                (RequestState.PUBLISHED, RequestState.PUBLISHED_EXPIRED),
                "regenerate the download token",
            )
            operator.require(record.jurisdiction_id)

            token = generate_download_token()
            updated = await self._repo.compare_and_swap(
                record, changes={"download_token": token, "issued_at": self._clock()}
            )
            await self._record_operation(
                OperationType.DOWNLOAD_TOKEN_REGENERATED, updated, operator, None
            )

        logger.info(
            "Download token regenerated",
            extra={
                "tramite_number": record.tramite_number,
                "operator": operator.username,
            },
        )
        return token

    async def list_by_jurisdiction(
        self,
        operator: ActingOperator,
        jurisdiction_id: int | None = None,
        *,
        state: RequestState | None = None,
        subject_id: str | None = None,
        page: int = 0,
        size: int | None = None,
    ) -> RequestPage:
        """List requests visible to the operator, newest first.

        Restricted operators always see their own jurisdiction; asking for
        another one is refused rather than silently narrowed.

        Raises:
            JurisdictionMismatchError: If the filter names a jurisdiction
                the operator may not see.
        """
        if jurisdiction_id is not None and not operator.capability.permits(jurisdiction_id):
            raise JurisdictionMismatchError(operator.operator_id, jurisdiction_id)
        scope = jurisdiction_id if jurisdiction_id is not None else operator.capability.scope

        return await self._repo.list_page(
            jurisdiction_id=scope,
            state=state,
            subject_id=subject_id,
            page=page,
            size=size or self._settings.page_size,
        )

    # -------------------------------------------------------------------------
    # Expiry (used by the sweeper)
    # -------------------------------------------------------------------------

    async def expire_pending(self, record: RequestRecord) -> RequestRecord:
        """Move an unpaid request to EXPIRED.

        Raises:
            InvalidStateTransitionError: If the snapshot is not PENDING.
            ConcurrentModificationError: If the request changed since the snapshot.
        """
        async with self._atomic():
            updated = await self._transition(record, RequestState.EXPIRED)

        if self._notifier is not None:
            self._notifier.request_expired(updated)
        return updated

    async def expire_published(self, record: RequestRecord) -> RequestRecord:
        """Move a published request to PUBLISHED_EXPIRED.

        The download token is kept for auditability; the caller removes the
        stored file.

        Raises:
            InvalidStateTransitionError: If the snapshot is not PUBLISHED.
            ConcurrentModificationError: If the request changed since the snapshot.
        """
        async with self._atomic():
            return await self._transition(record, RequestState.PUBLISHED_EXPIRED)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def download_url(self, download_token: str) -> str:
        return f"{self._public_base_url}{DOWNLOAD_PATH}{download_token}"

    @asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        """Commit on success, roll back on any error."""
        try:
            yield
        except BaseException:
            await self._repo.rollback()
            raise
        await self._repo.commit()

    async def _transition(
        self,
        record: RequestRecord,
        target: RequestState,
        *,
        changes: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> RequestRecord:
        if not is_valid_transition(record.state, target):
            logger.warning(
                "Invalid transition attempted",
                extra={
                    "request_id": str(record.request_id),
                    "from_state": record.state.value,
                    "to_state": target.value,
                },
            )
            raise InvalidStateTransitionError(record.state, target)

        updated = await self._repo.compare_and_swap(
            record, changes=changes, new_state=target, actor_id=actor_id
        )
        logger.info(
            "State transition completed",
            extra={
                "request_id": str(record.request_id),
                "tramite_number": record.tramite_number,
                "from_state": record.state.value,
                "to_state": target.value,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return updated

    @staticmethod
    def _require_state(
        record: RequestRecord, expected: tuple[RequestState, ...], operation: str
    ) -> None:
        if record.state not in expected:
            raise InvalidStateError(record.state, expected, operation)

    async def _record_operation(
        self,
        operation: OperationType,
        record: RequestRecord,
        operator: ActingOperator,
        detail: dict[str, Any] | None,
    ) -> None:
        if self._operations is None:
            return
        await self._operations.record(
            operation,
            request_id=record.request_id,
            operator_id=operator.operator_id,
            detail=detail,
        )
