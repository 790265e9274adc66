"""Append-only log of sensitive operator operations.

Certificate publication and download-token regeneration are recorded here
with the acting operator. Token regeneration does not change the request
state, so it would otherwise leave no trace in the state history. Rows are
staged in the caller's session and committed with the operation itself.
Download tokens are never written to the log.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import select

from rdam.db.models.audit import OperationAuditRecord
from rdam.db.models.base import OperationType

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True, slots=True)
class OperationEntry:
    """Immutable view of one operation audit row."""

    operation: OperationType
    request_id: UUID
    operator_id: UUID | None
    detail: dict[str, Any] | None
    occurred_at: datetime | None


class OperationRecorder(Protocol):
    async def record(
        self,
        operation: OperationType,
        *,
        request_id: UUID,
        operator_id: UUID | None,
        detail: dict[str, Any] | None = None,
    ) -> None: ...


class OperationAuditLog:
    """OperationRecorder writing to operation_audit_log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        operation: OperationType,
        *,
        request_id: UUID,
        operator_id: UUID | None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Stage an audit row; it is committed with the surrounding operation."""
        self._session.add(
            OperationAuditRecord(
                operation=operation,
                request_id=request_id,
                operator_id=operator_id,
                detail=detail,
            )
        )

    async def entries(self, request_id: UUID) -> list[OperationEntry]:
        result = await self._session.execute(
            select(OperationAuditRecord)
            .where(OperationAuditRecord.request_id == request_id)
            .order_by(OperationAuditRecord.occurred_at)
        )
        return [
            OperationEntry(
                operation=row.operation,
                request_id=row.request_id,
                operator_id=row.operator_id,
                detail=row.detail,
                occurred_at=row.occurred_at,
            )
            for row in result.scalars()
        ]
