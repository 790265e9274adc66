"""Certificate request models: requests, state history, jurisdictions.

A certificate request is mutated only through the lifecycle coordinator,
which writes with an explicit version precondition and appends exactly
one history row per state change in the same transaction.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from decimal import Decimal  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Identity,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rdam.db.models.base import (
    Base,
    OptionalTimestampTZ,
    RequestState,
    TimestampTZ,
    UUIDPrimaryKey,
)


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


RequestStateColumn = Enum(
    RequestState,
    name="request_state",
    create_constraint=True,
    values_callable=_enum_values,
)


class Jurisdiction(Base):
    """Judicial district (circunscripción) partitioning requests and operators.

    The set is provisioned by migration and never changed at runtime.
    """

    __tablename__ = "jurisdictions"

    jurisdiction_id: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CertificateRequest(Base):
    """A citizen's certificate request and its current lifecycle state."""

    __tablename__ = "certificate_requests"

    request_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    # Public identifier PREFIX-YYYYMMDD-NNNN, assigned once at creation
    tramite_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    # DNI or CUIL, digits only
    subject_id: Mapped[str] = mapped_column(String(11), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    jurisdiction_id: Mapped[int] = mapped_column(
        SmallInteger,
        ForeignKey("jurisdictions.jurisdiction_id", ondelete="RESTRICT"),
        nullable=False,
    )

    state: Mapped[RequestState] = mapped_column(
        RequestStateColumn,
        nullable=False,
        default=RequestState.PENDING,
    )

    # Payment gateway order reference, set at most once
    payment_order_ref: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    paid_at: Mapped[OptionalTimestampTZ]

    # Object store key of the published certificate PDF
    certificate_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Kept after expiry for auditability even though the file is gone
    download_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    issued_at: Mapped[OptionalTimestampTZ]

    # Optimistic concurrency counter, incremented on every successful write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    jurisdiction: Mapped[Jurisdiction] = relationship("Jurisdiction", lazy="joined")
    history: Mapped[list[RequestStateHistory]] = relationship(
        "RequestStateHistory",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestStateHistory.seq",
    )

    __table_args__ = (
        CheckConstraint(
            "(download_token IS NOT NULL) = (state IN ('published', 'published_expired'))",
            name="download_token_matches_state",
        ),
        Index("ix_certificate_requests_state_created_at", "state", "created_at"),
        Index("ix_certificate_requests_state_issued_at", "state", "issued_at"),
        Index("ix_certificate_requests_jurisdiction_state", "jurisdiction_id", "state"),
        Index("ix_certificate_requests_subject_id", "subject_id"),
    )


class RequestStateHistory(Base):
    """Append-only record of one state change of a certificate request.

    previous_state is null only for the creation entry; actor_id is null
    for automated transitions (webhook, expiry sweep).
    """

    __tablename__ = "request_state_history"

    history_id: Mapped[UUIDPrimaryKey]

    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("certificate_requests.request_id", ondelete="CASCADE"),
        nullable=False,
    )

    previous_state: Mapped[RequestState | None] = mapped_column(
        RequestStateColumn, nullable=True
    )
    new_state: Mapped[RequestState] = mapped_column(RequestStateColumn, nullable=False)

    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("operators.operator_id", ondelete="SET NULL"),
        nullable=True,
    )

    changed_at: Mapped[TimestampTZ]

    # Total order per request, independent of clock resolution
    seq: Mapped[int] = mapped_column(BigInteger, Identity(always=True), nullable=False)

    request: Mapped[CertificateRequest] = relationship(
        "CertificateRequest",
        back_populates="history",
    )

    __table_args__ = (Index("ix_request_state_history_request_seq", "request_id", "seq"),)


class TramiteSequence(Base):
    """Per-day counter backing trámite number generation."""

    __tablename__ = "tramite_sequences"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
