"""Operator accounts: login, logout and administration.

Operators log in with a username and password. The password is checked by
a PasswordHasher (Argon2id in production) and a successful login issues a
bearer session through OperatorSessionService. Administrators create
operators and activate or deactivate them; deactivation revokes every
session of the operator at once.

Account rules:
- An operator (role OPERATOR) is bound to exactly one existing jurisdiction
- An administrator is bound to none
- Usernames are unique, compared lowercased
- An administrator cannot deactivate their own account
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from rdam.db.models.base import OperatorRole
from rdam.db.models.operators import Operator
from rdam.db.models.requests import Jurisdiction
from rdam.services.errors import (
    DuplicateOperatorError,
    InvalidCredentialsError,
    InvalidOperatorError,
    OperatorInactiveError,
    OperatorNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from rdam.services.authz import ActingOperator
    from rdam.services.operator_sessions import IssuedSession

logger = logging.getLogger(__name__)


# =============================================================================
# Password hashing
# =============================================================================


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password_hash: str, password: str) -> bool: ...


class Argon2PasswordHasher:
    """PasswordHasher producing Argon2id hashes with argon2-cffi.

    A wrong password or a malformed stored hash both verify as False.
    """

    def __init__(self, hasher: Argon2Hasher | None = None) -> None:
        self._hasher = hasher or Argon2Hasher()

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False


# =============================================================================
# Accounts
# =============================================================================


@dataclass(frozen=True, slots=True)
class OperatorAccount:
    """Snapshot of an operator row."""

    operator_id: uuid.UUID
    username: str
    display_name: str
    email: str
    role: OperatorRole
    jurisdiction_id: int | None
    is_active: bool
    password_hash: str | None = field(default=None, repr=False)
    last_login_at: datetime | None = None

    @classmethod
    def from_model(cls, row: Operator) -> OperatorAccount:
        return cls(
            operator_id=row.operator_id,
            username=row.username,
            display_name=row.display_name,
            email=row.email,
            role=row.role,
            jurisdiction_id=row.jurisdiction_id,
            is_active=row.is_active,
            password_hash=row.password_hash,
            last_login_at=row.last_login_at,
        )


@dataclass(frozen=True, slots=True)
class NewOperator:
    """Values of an operator about to be created.

    Attributes:
        username: Login name, stored lowercased.
        password: Plain-text password; only its hash is stored.
        role: OPERATOR or ADMIN.
        jurisdiction_id: Required for OPERATOR, absent for ADMIN.
        display_name: Name shown in the panel, the username when omitted.
        email: Contact address, the username when omitted.
    """

    username: str
    password: str = field(repr=False)
    role: OperatorRole
    jurisdiction_id: int | None = None
    display_name: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class LoginResult:
    account: OperatorAccount
    session: IssuedSession


class OperatorRepository:
    """Database-backed store of operator accounts.

    Like RequestRepository, it leaves transaction boundaries to its caller.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, operator_id: uuid.UUID) -> OperatorAccount | None:
        row = await self._session.get(Operator, operator_id)
        return None if row is None else OperatorAccount.from_model(row)

    async def get_by_username(self, username: str) -> OperatorAccount | None:
        result = await self._session.execute(select(Operator).where(Operator.username == username))
        row = result.scalar_one_or_none()
        return None if row is None else OperatorAccount.from_model(row)

    async def jurisdiction_exists(self, jurisdiction_id: int) -> bool:
        row = await self._session.get(Jurisdiction, jurisdiction_id)
        return row is not None and row.is_active

    async def insert(
        self,
        *,
        username: str,
        display_name: str,
        email: str,
        role: OperatorRole,
        jurisdiction_id: int | None,
        password_hash: str,
    ) -> OperatorAccount:
        """Insert an active operator.

        Raises:
            DuplicateOperatorError: If the username was taken concurrently.
        """
        row = Operator(
            operator_id=uuid.uuid4(),
            username=username,
            display_name=display_name,
            email=email,
            role=role,
            jurisdiction_id=jurisdiction_id,
            password_hash=password_hash,
            is_active=True,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as e:
            raise DuplicateOperatorError(username) from e
        return OperatorAccount.from_model(row)

    async def set_active(self, operator_id: uuid.UUID, active: bool) -> OperatorAccount | None:
        row = await self._session.get(Operator, operator_id)
        if row is None:
            return None
        row.is_active = active
        await self._session.flush()
        return OperatorAccount.from_model(row)

    async def record_login(self, operator_id: uuid.UUID, at: datetime) -> None:
        await self._session.execute(
            update(Operator).where(Operator.operator_id == operator_id).values(last_login_at=at)
        )

    async def commit(self) -> None:
        await self._session.commit()


class OperatorStore(Protocol):
    async def get(self, operator_id: uuid.UUID) -> OperatorAccount | None: ...

    async def get_by_username(self, username: str) -> OperatorAccount | None: ...

    async def jurisdiction_exists(self, jurisdiction_id: int) -> bool: ...

    async def insert(
        self,
        *,
        username: str,
        display_name: str,
        email: str,
        role: OperatorRole,
        jurisdiction_id: int | None,
        password_hash: str,
    ) -> OperatorAccount: ...

    async def set_active(self, operator_id: uuid.UUID, active: bool) -> OperatorAccount | None: ...

    async def record_login(self, operator_id: uuid.UUID, at: datetime) -> None: ...

    async def commit(self) -> None: ...


class SessionIssuer(Protocol):
    async def issue(self, operator_id: uuid.UUID) -> IssuedSession: ...

    async def revoke(self, token: str) -> bool: ...

    async def revoke_all(self, operator_id: uuid.UUID) -> int: ...


def normalize_username(username: str) -> str:
    return username.strip().lower()


class OperatorAccountService:
    """Login, logout and administration of operator accounts.

    Every operation that writes commits through the operator store, which
    shares its database session with the session issuer.
    """

    def __init__(
        self,
        operators: OperatorStore,
        sessions: SessionIssuer,
        hasher: PasswordHasher,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._operators = operators
        self._sessions = sessions
        self._hasher = hasher
        self._clock = clock or (lambda: datetime.now(UTC))

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def login(self, username: str, password: str) -> LoginResult:
        """Check the credentials and issue a bearer session.

        Raises:
            InvalidCredentialsError: If the username is unknown, has no
                password, or the password does not match.
            OperatorInactiveError: If the credentials match a deactivated
                operator.
        """
        account = await self._operators.get_by_username(normalize_username(username))
        if account is None or account.password_hash is None:
            # Hash anyway so unknown usernames take as long as wrong passwords
            self._hasher.hash(password)
            logger.info("Operator login rejected: reason=unknown_user")
            raise InvalidCredentialsError

        if not self._hasher.verify(account.password_hash, password):
            logger.info("Operator login rejected: operator_id=%s", account.operator_id)
            raise InvalidCredentialsError
        if not account.is_active:
            logger.warning("Inactive operator attempted login: operator_id=%s", account.operator_id)
            raise OperatorInactiveError(account.username)

        issued = await self._sessions.issue(account.operator_id)
        await self._operators.record_login(account.operator_id, self._clock())
        await self._operators.commit()

        logger.info(
            "Operator logged in: operator_id=%s, role=%s",
            account.operator_id,
            account.role.value,
        )
        return LoginResult(account=account, session=issued)

    async def logout(self, token: str) -> bool:
        """Revoke the session of a bearer token. Returns False if it was not active."""
        revoked = await self._sessions.revoke(token)
        await self._operators.commit()
        return revoked

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def create_operator(self, acting: ActingOperator, new: NewOperator) -> OperatorAccount:
        """Create an active operator account.

        Raises:
            AdminRequiredError: If the acting operator is not an administrator.
            DuplicateOperatorError: If the username is taken.
            InvalidOperatorError: If the role and jurisdiction do not agree,
                or the jurisdiction does not exist.
        """
        acting.require_admin()
        username = normalize_username(new.username)

        if await self._operators.get_by_username(username) is not None:
            raise DuplicateOperatorError(username)
        if new.role is OperatorRole.OPERATOR and new.jurisdiction_id is None:
            msg = "An operator must be assigned a jurisdiction"
            raise InvalidOperatorError(msg)
        if new.role is OperatorRole.ADMIN and new.jurisdiction_id is not None:
            msg = "An administrator cannot be assigned a jurisdiction"
            raise InvalidOperatorError(msg)
        if new.jurisdiction_id is not None and not await self._operators.jurisdiction_exists(
            new.jurisdiction_id
        ):
            msg = f"Jurisdiction {new.jurisdiction_id} does not exist"
            raise InvalidOperatorError(msg)

        account = await self._operators.insert(
            username=username,
            display_name=new.display_name or username,
            email=new.email or username,
            role=new.role,
            jurisdiction_id=new.jurisdiction_id,
            password_hash=self._hasher.hash(new.password),
        )
        await self._operators.commit()

        logger.info(
            "Operator created: operator_id=%s, role=%s, jurisdiction_id=%s, by=%s",
            account.operator_id,
            account.role.value,
            account.jurisdiction_id,
            acting.operator_id,
        )
        return account

    async def set_active(
        self, acting: ActingOperator, operator_id: uuid.UUID, active: bool
    ) -> OperatorAccount:
        """Activate or deactivate an operator.

        Deactivation revokes the operator's sessions in the same transaction,
        so their bearer tokens stop resolving immediately.

        Raises:
            AdminRequiredError: If the acting operator is not an administrator.
            OperatorNotFoundError: If the operator does not exist.
            InvalidOperatorError: If an administrator deactivates themselves.
        """
        acting.require_admin()
        if await self._operators.get(operator_id) is None:
            raise OperatorNotFoundError(operator_id)
        if not active and operator_id == acting.operator_id:
            msg = "Administrators cannot deactivate their own account"
            raise InvalidOperatorError(msg)

        account = await self._operators.set_active(operator_id, active)
        if account is None:
            raise OperatorNotFoundError(operator_id)
        if not active:
            await self._sessions.revoke_all(operator_id)
        await self._operators.commit()

        logger.info(
            "Operator %s: operator_id=%s, by=%s",
            "activated" if active else "deactivated",
            operator_id,
            acting.operator_id,
        )
        return account
