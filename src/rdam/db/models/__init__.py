"""SQLAlchemy ORM models for RDAM.

This package contains all database models organized by domain:
- base: Common metadata, annotated column types and enums
- requests: Certificate requests, state history, jurisdictions, trámite sequence
- operators: Internal operators and their sessions
- audit: Operations audit log
"""

from rdam.db.models.audit import OperationAuditRecord
from rdam.db.models.base import (
    Base,
    OperationType,
    OperatorRole,
    RequestState,
    metadata,
)
from rdam.db.models.operators import Operator, OperatorSession
from rdam.db.models.requests import (
    CertificateRequest,
    Jurisdiction,
    RequestStateHistory,
    TramiteSequence,
)

__all__ = [
    "Base",
    "CertificateRequest",
    "Jurisdiction",
    "OperationAuditRecord",
    "OperationType",
    "Operator",
    "OperatorRole",
    "OperatorSession",
    "RequestState",
    "RequestStateHistory",
    "TramiteSequence",
    "metadata",
]
