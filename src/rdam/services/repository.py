"""Persistence of certificate requests with optimistic concurrency.

Reads return immutable RequestRecord snapshots. Every write goes through
compare_and_swap(), which issues

    UPDATE certificate_requests SET ..., version = version + 1
    WHERE request_id = :id AND version = :expected

and rejects the write when no row matched. The history entry for a state
change is staged in the same session, so both are committed together or
not at all. No row is ever locked pessimistically.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from rdam.db.models.base import RequestState
from rdam.db.models.requests import CertificateRequest, Jurisdiction
from rdam.services.audit_trail import AuditEntry, AuditTrail
from rdam.services.errors import (
    ConcurrentModificationError,
    DuplicateTramiteNumberError,
    RequestNotFoundError,
)

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Columns a caller may change through compare_and_swap
MUTABLE_FIELDS = frozenset(
    {
        "payment_order_ref",
        "payment_amount",
        "paid_at",
        "certificate_ref",
        "download_token",
        "issued_at",
    }
)


@dataclass(frozen=True, slots=True)
class RequestRecord:
    """Snapshot of a certificate request at a given version."""

    request_id: uuid.UUID
    tramite_number: str
    subject_id: str
    email: str
    jurisdiction_id: int
    state: RequestState
    created_at: datetime
    version: int
    payment_order_ref: str | None = None
    payment_amount: Decimal | None = None
    paid_at: datetime | None = None
    certificate_ref: str | None = None
    download_token: str | None = None
    issued_at: datetime | None = None

    @classmethod
    def from_model(cls, row: CertificateRequest) -> RequestRecord:
        return cls(
            request_id=row.request_id,
            tramite_number=row.tramite_number,
            subject_id=row.subject_id,
            email=row.email,
            jurisdiction_id=row.jurisdiction_id,
            state=row.state,
            created_at=row.created_at,
            version=row.version,
            payment_order_ref=row.payment_order_ref,
            payment_amount=row.payment_amount,
            paid_at=row.paid_at,
            certificate_ref=row.certificate_ref,
            download_token=row.download_token,
            issued_at=row.issued_at,
        )


@dataclass(frozen=True, slots=True)
class JurisdictionRecord:
    jurisdiction_id: int
    name: str
    code: str


@dataclass(frozen=True, slots=True)
class RequestPage:
    """One page of an operator listing.

    Attributes:
        items: Records on this page, newest first.
        total: Number of records matching the filters.
        page: Zero-based page index.
        size: Page size used for the query.
    """

    items: list[RequestRecord]
    total: int
    page: int
    size: int


class RequestRepository:
    """Database-backed store of certificate requests.

    Transaction boundaries belong to the caller: the lifecycle coordinator
    commits after each successful operation and rolls back on failure.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._trail = AuditTrail(session)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, request_id: uuid.UUID) -> RequestRecord:
        return await self._get_one(CertificateRequest.request_id == request_id, request_id)

    async def get_by_tramite(self, tramite_number: str) -> RequestRecord:
        return await self._get_one(
            CertificateRequest.tramite_number == tramite_number,
            tramite_number,
            field="tramite_number",
        )

    async def get_by_payment_ref(self, payment_order_ref: str) -> RequestRecord:
        return await self._get_one(
            CertificateRequest.payment_order_ref == payment_order_ref,
            payment_order_ref,
            field="payment_order_ref",
        )

    async def get_by_download_token(self, download_token: str) -> RequestRecord:
        return await self._get_one(
            CertificateRequest.download_token == download_token,
            "<redacted>",
            field="download_token",
        )

    async def get_jurisdiction(self, jurisdiction_id: int) -> JurisdictionRecord | None:
        row = await self._session.get(Jurisdiction, jurisdiction_id)
        if row is None or not row.is_active:
            return None
        return JurisdictionRecord(
            jurisdiction_id=row.jurisdiction_id,
            name=row.name,
            code=row.code,
        )

    async def find_pending_created_before(
        self, cutoff: datetime, limit: int = 500
    ) -> list[RequestRecord]:
        """PENDING requests created strictly before the cutoff, oldest first."""
        return await self._find(
            select(CertificateRequest)
            .where(
                CertificateRequest.state == RequestState.PENDING,
                CertificateRequest.created_at < cutoff,
            )
            .order_by(CertificateRequest.created_at)
            .limit(limit)
        )

    async def find_published_issued_before(
        self, cutoff: datetime, limit: int = 500
    ) -> list[RequestRecord]:
        """PUBLISHED requests issued strictly before the cutoff, oldest first."""
        return await self._find(
            select(CertificateRequest)
            .where(
                CertificateRequest.state == RequestState.PUBLISHED,
                CertificateRequest.issued_at < cutoff,
            )
            .order_by(CertificateRequest.issued_at)
            .limit(limit)
        )

    async def list_page(
        self,
        *,
        jurisdiction_id: int | None,
        state: RequestState | None = None,
        subject_id: str | None = None,
        page: int = 0,
        size: int = 20,
    ) -> RequestPage:
        """List requests newest first, optionally filtered."""
        conditions = []
        if jurisdiction_id is not None:
            conditions.append(CertificateRequest.jurisdiction_id == jurisdiction_id)
        if state is not None:
            conditions.append(CertificateRequest.state == state)
        if subject_id is not None:
            conditions.append(CertificateRequest.subject_id == subject_id)

        total = await self._session.scalar(
            select(func.count()).select_from(CertificateRequest).where(*conditions)
        )
        items = await self._find(
            select(CertificateRequest)
            .where(*conditions)
            .order_by(CertificateRequest.created_at.desc(), CertificateRequest.request_id)
            .offset(page * size)
            .limit(size)
        )
        return RequestPage(items=items, total=total or 0, page=page, size=size)

    async def history(self, request_id: uuid.UUID) -> list[AuditEntry]:
        return await self._trail.entries(request_id)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert(
        self,
        *,
        tramite_number: str,
        subject_id: str,
        email: str,
        jurisdiction_id: int,
        created_at: datetime,
    ) -> RequestRecord:
        """Insert a new PENDING request together with its creation entry.

        Raises:
            DuplicateTramiteNumberError: If the trámite number is taken; the
                enclosing transaction remains usable for a retry.
        """
        row = CertificateRequest(
            request_id=uuid.uuid4(),
            tramite_number=tramite_number,
            subject_id=subject_id,
            email=email,
            jurisdiction_id=jurisdiction_id,
            state=RequestState.PENDING,
            created_at=created_at,
            updated_at=created_at,
            version=0,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as e:
            raise DuplicateTramiteNumberError(tramite_number) from e

        await self._trail.append(row.request_id, None, RequestState.PENDING, None)
        await self._session.flush()
        return RequestRecord.from_model(row)

    async def compare_and_swap(
        self,
        record: RequestRecord,
        *,
        changes: dict[str, Any] | None = None,
        new_state: RequestState | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> RequestRecord:
        """Apply changes if the stored version still equals record.version.

        Args:
            record: Snapshot the caller based its decision on.
            changes: Column values to set (subset of MUTABLE_FIELDS).
            new_state: Target state; when given, a history entry is staged.
            actor_id: Operator responsible, None for automated changes.

        Returns:
            The snapshot after the write, at version + 1.

        Raises:
            ConcurrentModificationError: If another writer got there first.
        """
        values = dict(changes or {})
        unknown = set(values) - MUTABLE_FIELDS
        if unknown:
            msg = f"Fields cannot be changed through compare_and_swap: {sorted(unknown)}"
            raise ValueError(msg)
        if new_state is not None:
            values["state"] = new_state

        result = await self._session.execute(
            update(CertificateRequest)
            .where(
                CertificateRequest.request_id == record.request_id,
                CertificateRequest.version == record.version,
            )
            .values(**values, version=record.version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "Version conflict: request_id=%s, expected_version=%d",
                record.request_id,
                record.version,
            )
            raise ConcurrentModificationError(record.request_id, record.version)

        if new_state is not None:
            await self._trail.append(record.request_id, record.state, new_state, actor_id)
        await self._session.flush()

        return replace(record, **values, version=record.version + 1)

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_one(
        self, condition: Any, key: Any, *, field: str = "request_id"
    ) -> RequestRecord:
        result = await self._session.execute(
            select(CertificateRequest)
            .where(condition)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise RequestNotFoundError(key, field=field)
        return RequestRecord.from_model(row)

    async def _find(self, stmt: Any) -> list[RequestRecord]:
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return [RequestRecord.from_model(row) for row in result.scalars().unique()]
