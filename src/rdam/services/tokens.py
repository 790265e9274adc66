"""Short-lived verification codes and citizen session tokens.

Two independent keyspaces live in Redis, both expiring through key TTLs:

- otp:{request_id}           six-digit code, TTL 15 minutes by default
  otp:attempts:{request_id}  validation attempts, capped at 3 by default
- citizen:token:{token}      trámite number, TTL 24 hours by default

Codes and tokens come from the secrets module: both are guessable attack
surface on unauthenticated endpoints.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from uuid import UUID

    import redis.asyncio as aioredis

    from rdam.core.config import RedisSettings

logger = logging.getLogger(__name__)

OTP_KEY = "otp:{}"
OTP_ATTEMPTS_KEY = "otp:attempts:{}"
CITIZEN_TOKEN_KEY = "citizen:token:{}"

CITIZEN_TOKEN_BYTES = 32  # 64 hex characters


class OtpOutcome(str, Enum):
    """Result of validating a verification code."""

    VALID = "valid"
    INCORRECT = "incorrect"
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


@dataclass(frozen=True, slots=True)
class OtpCheck:
    """Outcome of one validation attempt.

    Attributes:
        outcome: Validation result.
        attempts_remaining: Attempts left after this one (INCORRECT only).
    """

    outcome: OtpOutcome
    attempts_remaining: int | None = None

    @property
    def is_valid(self) -> bool:
        return self.outcome is OtpOutcome.VALID


class EphemeralTokenStore(Protocol):
    """TTL key-value store for verification codes and citizen tokens."""

    async def issue_otp(self, request_id: UUID) -> str: ...

    async def validate_otp(self, request_id: UUID, code: str) -> OtpCheck: ...

    async def issue_citizen_token(self, tramite_number: str) -> str: ...

    async def resolve_citizen_token(self, token: str) -> str | None: ...

    async def revoke_citizen_token(self, token: str) -> None: ...


def generate_otp() -> str:
    """Six-digit code, never starting with zero."""
    return str(100000 + secrets.randbelow(900000))


def generate_citizen_token() -> str:
    return secrets.token_hex(CITIZEN_TOKEN_BYTES)


def _text(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisTokenStore:
    """EphemeralTokenStore backed by redis.asyncio.

    Example:
        client = redis.asyncio.Redis.from_url(settings.redis.url, decode_responses=True)
        store = RedisTokenStore.from_settings(client, settings.redis)
        code = await store.issue_otp(request_id)
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        otp_ttl_seconds: int = 15 * 60,
        otp_max_attempts: int = 3,
        citizen_token_ttl_seconds: int = 24 * 3600,
    ) -> None:
        self._redis = client
        self._otp_ttl = otp_ttl_seconds
        self._otp_max_attempts = otp_max_attempts
        self._citizen_ttl = citizen_token_ttl_seconds

    @classmethod
    def from_settings(cls, client: aioredis.Redis, settings: RedisSettings) -> RedisTokenStore:
        return cls(
            client,
            otp_ttl_seconds=settings.otp_ttl_minutes * 60,
            otp_max_attempts=settings.otp_max_attempts,
            citizen_token_ttl_seconds=settings.citizen_token_ttl_hours * 3600,
        )

    async def issue_otp(self, request_id: UUID) -> str:
        """Store a new code for the request, resetting the attempt counter."""
        code = generate_otp()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(OTP_KEY.format(request_id), code, ex=self._otp_ttl)
            pipe.set(OTP_ATTEMPTS_KEY.format(request_id), 0, ex=self._otp_ttl)
            await pipe.execute()
        logger.debug("Verification code issued: request_id=%s", request_id)
        return code

    async def validate_otp(self, request_id: UUID, code: str) -> OtpCheck:
        """Validate a code, consuming one attempt.

        A correct code deletes both keys. Once the attempt cap is passed the
        code is deleted but the counter is kept until its TTL, so later
        calls keep reporting ATTEMPTS_EXHAUSTED rather than EXPIRED.
        """
        otp_key = OTP_KEY.format(request_id)
        attempts_key = OTP_ATTEMPTS_KEY.format(request_id)

        stored = await self._redis.get(otp_key)
        if stored is None:
            attempts = await self._redis.get(attempts_key)
            if attempts is not None and int(attempts) > self._otp_max_attempts:
                return OtpCheck(OtpOutcome.ATTEMPTS_EXHAUSTED)
            return OtpCheck(OtpOutcome.EXPIRED)

        # EXPIRE NX keeps the TTL from issue_otp, and bounds a counter that
        # INCR recreated after the original key lapsed.
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(attempts_key)
            pipe.expire(attempts_key, self._otp_ttl, nx=True)
            attempts, _ = await pipe.execute()
        if attempts > self._otp_max_attempts:
            await self._redis.delete(otp_key)
            logger.info("Verification attempts exhausted: request_id=%s", request_id)
            return OtpCheck(OtpOutcome.ATTEMPTS_EXHAUSTED)

        if not hmac.compare_digest(_text(stored).encode(), code.encode()):
            return OtpCheck(
                OtpOutcome.INCORRECT,
                attempts_remaining=self._otp_max_attempts - attempts,
            )

        await self._redis.delete(otp_key, attempts_key)
        return OtpCheck(OtpOutcome.VALID)

    async def issue_citizen_token(self, tramite_number: str) -> str:
        token = generate_citizen_token()
        await self._redis.set(CITIZEN_TOKEN_KEY.format(token), tramite_number, ex=self._citizen_ttl)
        return token

    async def resolve_citizen_token(self, token: str) -> str | None:
        """Return the trámite number bound to the token, or None."""
        value = await self._redis.get(CITIZEN_TOKEN_KEY.format(token))
        return None if value is None else _text(value)

    async def revoke_citizen_token(self, token: str) -> None:
        await self._redis.delete(CITIZEN_TOKEN_KEY.format(token))
