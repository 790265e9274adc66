"""Operations audit log model.

Sensitive operator actions (certificate publication, download token
regeneration) are recorded here, separately from the per-request state
history, because some of them do not change the request state.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from rdam.db.models.base import (
    Base,
    OperationType,
    TimestampTZ,
    UUIDPrimaryKey,
)


class OperationAuditRecord(Base):
    """Append-only record of a sensitive operator operation."""

    __tablename__ = "operation_audit_log"

    record_id: Mapped[UUIDPrimaryKey]
    occurred_at: Mapped[TimestampTZ]

    operation: Mapped[OperationType] = mapped_column(
        Enum(
            OperationType,
            name="operation_type",
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )

    operator_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("operators.operator_id", ondelete="SET NULL"),
        nullable=True,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("certificate_requests.request_id", ondelete="CASCADE"),
        nullable=False,
    )

    # Non-secret context (e.g. storage key); tokens are never written here
    detail: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        Index("ix_operation_audit_log_request_id", "request_id"),
        Index("ix_operation_audit_log_operator_id", "operator_id"),
    )
