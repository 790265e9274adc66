"""Error taxonomy shared by the lifecycle services.

Every member is recoverable at the HTTP boundary, where
rdam.api.middleware.errors maps it to a structured client response.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from rdam.db.models.base import RequestState


class RdamError(Exception):
    """Base exception for lifecycle operations."""


class NotFoundError(RdamError):
    """Raised when a referenced entity does not exist."""


class RequestNotFoundError(NotFoundError):
    """Raised when a certificate request cannot be resolved."""

    def __init__(self, key: UUID | str, *, field: str = "request_id") -> None:
        self.key = key
        self.field = field
        super().__init__(f"Certificate request not found ({field}={key})")


class JurisdictionNotFoundError(NotFoundError):
    """Raised when a jurisdiction id is not one of the provisioned ones."""

    def __init__(self, jurisdiction_id: int) -> None:
        self.jurisdiction_id = jurisdiction_id
        super().__init__(f"Jurisdiction {jurisdiction_id} not found")


class InvalidStateTransitionError(RdamError):
    """Raised when a transition is not in the transition table."""

    def __init__(
        self,
        from_state: RequestState,
        to_state: RequestState,
        reason: str | None = None,
    ) -> None:
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state.value} to {to_state.value}"
        super().__init__(self.reason)


class InvalidStateError(RdamError):
    """Raised when an operation requires a state the request is not in."""

    def __init__(
        self,
        current: RequestState,
        expected: tuple[RequestState, ...],
        operation: str,
    ) -> None:
        self.current = current
        self.expected = expected
        self.operation = operation
        allowed = ", ".join(s.value for s in expected)
        super().__init__(
            f"Cannot {operation} while request is {current.value} (requires {allowed})"
        )


class ConcurrentModificationError(RdamError):
    """Raised when a write loses the compare-and-swap race on the version."""

    def __init__(self, request_id: UUID, expected_version: int) -> None:
        self.request_id = request_id
        self.expected_version = expected_version
        super().__init__(
            f"Request {request_id} was modified concurrently "
            f"(expected version {expected_version}); retry"
        )


class JurisdictionMismatchError(RdamError):
    """Raised when an operator acts outside their jurisdiction."""

    def __init__(self, operator_id: UUID, jurisdiction_id: int) -> None:
        self.operator_id = operator_id
        self.jurisdiction_id = jurisdiction_id
        super().__init__(
            f"Operator {operator_id} is not authorized for jurisdiction {jurisdiction_id}"
        )


class StorageFailureError(RdamError):
    """Raised when a collaborator (object store) fails on a fatal path."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class TokenInvalidReason(str, Enum):
    """Why a verification code or token was rejected.

    Values:
        EXPIRED: Absent or past its TTL
        INCORRECT: Wrong code, attempts remain
        ATTEMPTS_EXHAUSTED: Maximum attempts reached
    """

    EXPIRED = "expired"
    INCORRECT = "incorrect"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


class TokenInvalidError(RdamError):
    """Raised when a verification code or bearer token is not valid."""

    def __init__(
        self,
        reason: TokenInvalidReason,
        *,
        attempts_remaining: int | None = None,
        message: str | None = None,
    ) -> None:
        self.reason = reason
        self.attempts_remaining = attempts_remaining
        super().__init__(message or _TOKEN_MESSAGES[reason])


_TOKEN_MESSAGES = {
    TokenInvalidReason.EXPIRED: "The code or token has expired",
    TokenInvalidReason.INCORRECT: "The code is incorrect",
    TokenInvalidReason.ATTEMPTS_EXHAUSTED: "Maximum verification attempts reached",
}


class PaymentGatewayUnavailableError(RdamError):
    """Raised when the configured payment mode cannot create orders."""


class DuplicateTramiteNumberError(RdamError):
    """Raised when a generated trámite number collides with an existing one."""

    def __init__(self, tramite_number: str) -> None:
        self.tramite_number = tramite_number
        super().__init__(f"Trámite number {tramite_number} already exists")


class CertificateExpiredError(TokenInvalidError):
    """Raised when a download token belongs to an expired certificate."""

    def __init__(self) -> None:
        super().__init__(
            TokenInvalidReason.EXPIRED,
            message="The certificate download period has ended",
        )


class InvalidCertificateFileError(RdamError):
    """Raised when an uploaded certificate is rejected before storage."""


class CertificateTooLargeError(InvalidCertificateFileError):
    """Raised when an uploaded certificate exceeds the size limit."""

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(f"Certificate is {size_bytes} bytes; the limit is {max_bytes}")


class UnsupportedCertificateTypeError(InvalidCertificateFileError):
    """Raised when an uploaded certificate is not a PDF."""

    def __init__(self, content_type: str | None) -> None:
        self.content_type = content_type
        super().__init__(f"Certificate must be a PDF (received {content_type or 'unknown'})")


class OperatorNotFoundError(NotFoundError):
    """Raised when an operator id does not exist."""

    def __init__(self, operator_id: UUID) -> None:
        self.operator_id = operator_id
        super().__init__(f"Operator {operator_id} not found")


class InvalidCredentialsError(RdamError):
    """Raised when a login does not match an operator and password."""

    def __init__(self) -> None:
        super().__init__("Invalid username or password")


class OperatorInactiveError(RdamError):
    """Raised when a deactivated operator tries to log in."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__("Operator account is disabled")


class AdminRequiredError(RdamError):
    """Raised when a non-administrator calls an administration operation."""

    def __init__(self, operator_id: UUID) -> None:
        self.operator_id = operator_id
        super().__init__("Administrator role required")


class InvalidOperatorError(RdamError):
    """Raised when an operator account change breaks an account rule."""


class DuplicateOperatorError(RdamError):
    """Raised when a username is already taken."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Username {username} already exists")
