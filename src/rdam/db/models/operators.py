"""Internal operator models: operators and their sessions.

Operators log in with a username and an Argon2id password hash. Each
login issues an opaque bearer token; only its SHA-256 hash is stored in
operator_sessions.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import datetime  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    SmallInteger,
    String,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rdam.db.models.base import (
    Base,
    OperatorRole,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDPrimaryKey,
)


class Operator(Base):
    """Internal user who uploads certificates.

    Administrators are bound to no jurisdiction; every other operator is
    bound to exactly one.
    """

    __tablename__ = "operators"

    operator_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[OperatorRole] = mapped_column(
        Enum(
            OperatorRole,
            name="operator_role",
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=OperatorRole.OPERATOR,
    )
    jurisdiction_id: Mapped[int | None] = mapped_column(
        SmallInteger,
        ForeignKey("jurisdictions.jurisdiction_id", ondelete="RESTRICT"),
        nullable=True,
    )
    # Argon2id hash; an operator without one cannot log in
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_login_at: Mapped[OptionalTimestampTZ]

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    sessions: Mapped[list[OperatorSession]] = relationship(
        "OperatorSession",
        back_populates="operator",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "(role = 'admin') = (jurisdiction_id IS NULL)",
            name="jurisdiction_matches_role",
        ),
    )


class OperatorSession(Base):
    """Bearer session of an operator, stored as a token hash."""

    __tablename__ = "operator_sessions"

    session_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    operator_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("operators.operator_id", ondelete="CASCADE"),
        nullable=False,
    )

    # SHA-256 of the bearer token; the token itself is never stored
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[OptionalTimestampTZ]

    operator: Mapped[Operator] = relationship("Operator", back_populates="sessions")

    __table_args__ = (
        Index(
            "ix_operator_sessions_active",
            "operator_id",
            postgresql_where="revoked_at IS NULL",
        ),
    )
