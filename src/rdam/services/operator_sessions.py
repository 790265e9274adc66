"""Operator bearer sessions.

A successful login issues an opaque bearer token whose SHA-256 hash is
stored in operator_sessions. Each internal request resolves the presented
token to an ActingOperator. Logout revokes one session, and deactivating
an operator revokes all of theirs.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from rdam.db.models.operators import Operator, OperatorSession
from rdam.services.authz import ActingOperator, capability_for
from rdam.services.errors import TokenInvalidError, TokenInvalidReason

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_SESSION_DURATION_HOURS = 12
SESSION_TOKEN_BYTES = 32  # 256 bits of entropy


@dataclass(frozen=True, slots=True)
class IssuedSession:
    """A freshly issued operator session.

    Attributes:
        session_id: Identifier of the stored session row.
        access_token: Bearer token; only returned here, never stored.
        expires_at: When the session stops being accepted.
    """

    session_id: UUID
    access_token: str
    expires_at: datetime


def hash_token(token: str) -> str:
    """Hex SHA-256 of a bearer token, as stored in operator_sessions."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class OperatorSessionService:
    """Resolves operator bearer tokens against stored session hashes."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        session_duration_hours: int = DEFAULT_SESSION_DURATION_HOURS,
    ) -> None:
        self._db = db_session
        self._session_duration = timedelta(hours=session_duration_hours)

    async def issue(self, operator_id: UUID) -> IssuedSession:
        """Create a session for an operator and return its bearer token."""
        access_token = secrets.token_hex(SESSION_TOKEN_BYTES)
        expires_at = datetime.now(UTC) + self._session_duration

        row = OperatorSession(
            operator_id=operator_id,
            token_hash=hash_token(access_token),
            expires_at=expires_at,
        )
        self._db.add(row)
        await self._db.flush()

        logger.info("Operator session issued: operator_id=%s", operator_id)
        return IssuedSession(
            session_id=row.session_id,
            access_token=access_token,
            expires_at=expires_at,
        )

    async def resolve(self, token: str) -> ActingOperator:
        """Resolve a bearer token to the operator it belongs to.

        Raises:
            TokenInvalidError: If the token is unknown, expired, revoked,
                or its operator is inactive.
        """
        result = await self._db.execute(
            select(OperatorSession, Operator)
            .join(Operator, Operator.operator_id == OperatorSession.operator_id)
            .where(OperatorSession.token_hash == hash_token(token))
        )
        found = result.one_or_none()
        if found is None:
            logger.debug("Operator token not found")
            raise TokenInvalidError(TokenInvalidReason.EXPIRED, message="Invalid session token")

        session, operator = found
        if session.revoked_at is not None or session.expires_at <= datetime.now(UTC):
            logger.debug("Operator session no longer valid: session_id=%s", session.session_id)
            raise TokenInvalidError(TokenInvalidReason.EXPIRED, message="Session expired")
        if not operator.is_active:
            logger.warning("Inactive operator presented a session: %s", operator.username)
            raise TokenInvalidError(TokenInvalidReason.EXPIRED, message="Operator is inactive")

        return ActingOperator(
            operator_id=operator.operator_id,
            username=operator.username,
            capability=capability_for(operator.role, operator.jurisdiction_id),
        )

    async def revoke(self, token: str) -> bool:
        """Revoke the session of a bearer token. Returns False if none was active."""
        result = await self._db.execute(
            update(OperatorSession)
            .where(
                OperatorSession.token_hash == hash_token(token),
                OperatorSession.revoked_at.is_(None),
            )
            .values(revoked_at=datetime.now(UTC))
        )
        return result.rowcount > 0

    async def revoke_all(self, operator_id: UUID) -> int:
        """Revoke every active session of an operator. Returns how many were revoked."""
        result = await self._db.execute(
            update(OperatorSession)
            .where(
                OperatorSession.operator_id == operator_id,
                OperatorSession.revoked_at.is_(None),
            )
            .values(revoked_at=datetime.now(UTC))
        )
        if result.rowcount:
            logger.info(
                "Operator sessions revoked: operator_id=%s, count=%d", operator_id, result.rowcount
            )
        return result.rowcount
