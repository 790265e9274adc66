"""Citizen verification and session tokens.

After submitting a request the citizen receives a six-digit code by email.
Entering it proves ownership of the address and yields a bearer token bound
to that request's trámite number. The token only grants access to that
request: presenting it for any other request looks exactly like a missing
request, so trámite numbers cannot be enumerated with a valid token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rdam.services.errors import RequestNotFoundError, TokenInvalidError, TokenInvalidReason
from rdam.services.tokens import OtpOutcome

if TYPE_CHECKING:
    from uuid import UUID

    from rdam.db.models.base import RequestState
    from rdam.services.notifications import Notifier
    from rdam.services.repository import RequestRecord, RequestRepository
    from rdam.services.tokens import EphemeralTokenStore

logger = logging.getLogger(__name__)

_REASONS = {
    OtpOutcome.EXPIRED: TokenInvalidReason.EXPIRED,
    OtpOutcome.INCORRECT: TokenInvalidReason.INCORRECT,
    OtpOutcome.ATTEMPTS_EXHAUSTED: TokenInvalidReason.ATTEMPTS_EXHAUSTED,
}


@dataclass(frozen=True, slots=True)
class CitizenSession:
    """Bearer token issued after a successful code check."""

    access_token: str
    tramite_number: str
    state: RequestState


class CitizenAccessService:
    def __init__(
        self,
        repository: RequestRepository,
        tokens: EphemeralTokenStore,
        notifier: Notifier | None = None,
    ) -> None:
        self._repo = repository
        self._tokens = tokens
        self._notifier = notifier

    async def issue_verification_code(self, record: RequestRecord) -> None:
        """Store a fresh code for the request and email it.

        Call after the request has been committed.
        """
        code = await self._tokens.issue_otp(record.request_id)
        if self._notifier is not None:
            self._notifier.verification_code(record, code)

    async def verify_code(self, request_id: UUID, code: str) -> CitizenSession:
        """Check an emailed code and open a citizen session.

        Raises:
            RequestNotFoundError: If the request does not exist.
            TokenInvalidError: With reason expired, incorrect (and the
                attempts left) or attempts_exhausted.
        """
        record = await self._repo.get(request_id)
        check = await self._tokens.validate_otp(request_id, code)
        if not check.is_valid:
            logger.info(
                "Verification code rejected: request_id=%s reason=%s",
                request_id,
                check.outcome.value,
            )
            raise TokenInvalidError(
                _REASONS[check.outcome], attempts_remaining=check.attempts_remaining
            )

        token = await self._tokens.issue_citizen_token(record.tramite_number)
        logger.info("Citizen verified: tramite=%s", record.tramite_number)
        return CitizenSession(
            access_token=token,
            tramite_number=record.tramite_number,
            state=record.state,
        )

    async def resolve_citizen_token(self, token: str) -> str:
        """Trámite number bound to a citizen token.

        Raises:
            TokenInvalidError: If the token is unknown or has expired.
        """
        tramite_number = await self._tokens.resolve_citizen_token(token)
        if tramite_number is None:
            raise TokenInvalidError(
                TokenInvalidReason.EXPIRED, message="Session token is invalid or has expired"
            )
        return tramite_number

    async def authorize_tramite(self, token: str, tramite_number: str) -> None:
        """Check that the token was issued for this trámite number.

        Raises:
            TokenInvalidError: If the token is unknown or has expired.
            RequestNotFoundError: If the token belongs to another request.
        """
        if await self.resolve_citizen_token(token) != tramite_number:
            raise RequestNotFoundError(tramite_number, field="tramite_number")

    async def authorize_request(self, token: str, request_id: UUID) -> RequestRecord:
        """Load a request on behalf of the citizen holding the token.

        Raises:
            TokenInvalidError: If the token is unknown or has expired.
            RequestNotFoundError: If the request does not exist or the token
                belongs to another request.
        """
        tramite_number = await self.resolve_citizen_token(token)
        record = await self._repo.get(request_id)
        if record.tramite_number != tramite_number:
            raise RequestNotFoundError(request_id)
        return record
