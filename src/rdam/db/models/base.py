"""Base model definitions and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Reusable annotated column types
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, MetaData, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()

# UUID primary key with server-side default generation
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]


class Base(DeclarativeBase):
    """Declarative base for all RDAM models."""

    metadata = metadata
    registry = type_registry


# =============================================================================
# Common Enums
# =============================================================================


class RequestState(enum.Enum):
    """Certificate request lifecycle states.

    States:
        PENDING: Submitted by the citizen, waiting for payment
        PAID: Payment approved, waiting for an operator to upload the certificate
        PUBLISHED: Certificate uploaded and downloadable
        PUBLISHED_EXPIRED: Download window elapsed, file removed (terminal)
        EXPIRED: Never paid in time, or payment rejected (terminal)

    Allowed moves between states live in rdam.services.transitions.
    """

    PENDING = "pending"
    PAID = "paid"
    PUBLISHED = "published"
    PUBLISHED_EXPIRED = "published_expired"
    EXPIRED = "expired"


class OperatorRole(enum.Enum):
    """Role of an internal operator.

    Values:
        OPERATOR: Bound to exactly one jurisdiction
        ADMIN: Not bound to any jurisdiction (unrestricted)
    """

    OPERATOR = "operator"
    ADMIN = "admin"


class OperationType(enum.Enum):
    """Sensitive operator operations recorded in the operations audit log."""

    CERTIFICATE_PUBLISHED = "certificate_published"
    DOWNLOAD_TOKEN_REGENERATED = "download_token_regenerated"
