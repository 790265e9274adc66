"""RDAM service layer.

This package contains the request lifecycle and its collaborators:
- LifecycleCoordinator: Sole entry point for request state changes
- RequestRepository: Optimistic-concurrency persistence and state history
- TramiteNumberGenerator: Per-day trámite numbering
- RedisTokenStore: Verification codes and citizen session tokens
- CitizenAccessService: Email verification and citizen token checks
- CertificateService / CertificateStore: Certificate upload, storage and download
- PaymentGateway: PlusPagos orders and webhook signatures
- NotificationDispatcher / EmailNotificationService: Post-commit citizen emails
- OperatorSessionService: Operator bearer tokens and jurisdiction capabilities
"""

from rdam.services.errors import (
    ConcurrentModificationError,
    InvalidStateError,
    InvalidStateTransitionError,
    JurisdictionMismatchError,
    NotFoundError,
    RdamError,
    RequestNotFoundError,
    StorageFailureError,
    TokenInvalidError,
    TokenInvalidReason,
)
from rdam.services.lifecycle import LifecycleCoordinator, PaymentRecordResult, StatusView
from rdam.services.repository import RequestPage, RequestRecord, RequestRepository
from rdam.services.transitions import ALLOWED_TRANSITIONS, is_valid_transition

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ConcurrentModificationError",
    "InvalidStateError",
    "InvalidStateTransitionError",
    "JurisdictionMismatchError",
    "LifecycleCoordinator",
    "NotFoundError",
    "PaymentRecordResult",
    "RdamError",
    "RequestNotFoundError",
    "RequestPage",
    "RequestRecord",
    "RequestRepository",
    "StatusView",
    "StorageFailureError",
    "TokenInvalidError",
    "TokenInvalidReason",
    "is_valid_transition",
]
