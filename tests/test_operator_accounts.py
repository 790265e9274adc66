"""Tests for operator login, logout and account administration.

Tests cover:
- Argon2id password hashing and verification
- Login: credentials, inactive operators, session issue and last login
- Logout revoking the presented session
- Operator creation rules (role, jurisdiction, duplicates)
- Activation and deactivation, including session revocation
"""

import uuid
from dataclasses import replace

import pytest
from argon2 import PasswordHasher

from rdam.db.models.base import OperatorRole
from rdam.services.errors import (
    AdminRequiredError,
    DuplicateOperatorError,
    InvalidCredentialsError,
    InvalidOperatorError,
    OperatorInactiveError,
    OperatorNotFoundError,
    TokenInvalidError,
)
from rdam.services.operator_accounts import Argon2PasswordHasher, NewOperator
from tests.conftest import ADMIN_TOKEN, OPERATOR_PASSWORD, ROSARIO_TOKEN


class TestArgon2PasswordHasher:
    """Tests for Argon2PasswordHasher."""

    def test_hash_and_verify(self, password_hasher):
        """Test a hash verifies its own password only."""
        password_hash = password_hasher.hash("secreto-123")

        assert password_hash.startswith("$argon2id$")
        assert password_hasher.verify(password_hash, "secreto-123")
        assert not password_hasher.verify(password_hash, "otro")

    def test_malformed_hash(self, password_hasher):
        """Test a corrupted stored hash verifies as False."""
        assert not password_hasher.verify("not-a-hash", "secreto-123")

    def test_default_parameters(self):
        """Test the default hasher uses argon2-cffi defaults."""
        hasher = Argon2PasswordHasher()

        assert hasher.verify(PasswordHasher().hash("x"), "x")


# ---------------------------------------------------------------------------
# Login and logout
# ---------------------------------------------------------------------------
class TestLogin:
    """Tests for OperatorAccountService.login."""

    @pytest.mark.asyncio
    async def test_login_issues_session(
        self, operator_accounts, operator_sessions, operator_store, santa_fe_operator, clock
    ):
        """Test valid credentials issue a session resolving to the operator."""
        result = await operator_accounts.login("operador.sfe", OPERATOR_PASSWORD)

        assert result.account.operator_id == santa_fe_operator.operator_id
        acting = await operator_sessions.resolve(result.session.access_token)
        assert acting == santa_fe_operator
        stored = operator_store.accounts[santa_fe_operator.operator_id]
        assert stored.last_login_at == clock()
        assert operator_store.commits == 1

    @pytest.mark.asyncio
    async def test_username_is_case_insensitive(self, operator_accounts, admin):
        """Test usernames are matched lowercased and stripped."""
        result = await operator_accounts.login("  ADMIN ", OPERATOR_PASSWORD)

        assert result.account.operator_id == admin.operator_id

    @pytest.mark.asyncio
    async def test_wrong_password(self, operator_accounts, operator_store):
        """Test a wrong password is rejected without a commit."""
        with pytest.raises(InvalidCredentialsError):
            await operator_accounts.login("operador.sfe", "incorrecta")

        assert operator_store.commits == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, operator_accounts):
        """Test an unknown username gets the same error as a wrong password."""
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await operator_accounts.login("nadie", OPERATOR_PASSWORD)

        assert str(exc_info.value) == "Invalid username or password"

    @pytest.mark.asyncio
    async def test_operator_without_password(
        self, operator_accounts, operator_store, santa_fe_operator
    ):
        """Test an account with no password hash cannot log in."""
        account = operator_store.accounts[santa_fe_operator.operator_id]
        operator_store.add(replace(account, password_hash=None))

        with pytest.raises(InvalidCredentialsError):
            await operator_accounts.login("operador.sfe", OPERATOR_PASSWORD)

    @pytest.mark.asyncio
    async def test_inactive_operator(self, operator_accounts, operator_store, rosario_operator):
        """Test a deactivated operator is refused after the password check."""
        await operator_store.set_active(rosario_operator.operator_id, False)

        with pytest.raises(OperatorInactiveError):
            await operator_accounts.login("operador.ros", OPERATOR_PASSWORD)


class TestLogout:
    """Tests for OperatorAccountService.logout."""

    @pytest.mark.asyncio
    async def test_revokes_session(self, operator_accounts, operator_sessions, operator_store):
        """Test logout revokes the token and commits."""
        assert await operator_accounts.logout(ADMIN_TOKEN) is True

        with pytest.raises(TokenInvalidError):
            await operator_sessions.resolve(ADMIN_TOKEN)
        assert operator_store.commits == 1

    @pytest.mark.asyncio
    async def test_second_logout(self, operator_accounts):
        """Test logging out twice reports nothing was revoked."""
        await operator_accounts.logout(ADMIN_TOKEN)

        assert await operator_accounts.logout(ADMIN_TOKEN) is False


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------
class TestCreateOperator:
    """Tests for OperatorAccountService.create_operator."""

    @pytest.mark.asyncio
    async def test_creates_operator(
        self, operator_accounts, operator_store, admin, password_hasher
    ):
        """Test an operator is stored active with a hashed password."""
        account = await operator_accounts.create_operator(
            admin,
            NewOperator(
                username="Nueva@Justicia.example",
                password="segura-456",
                role=OperatorRole.OPERATOR,
                jurisdiction_id=4,
            ),
        )

        assert account.username == "nueva@justicia.example"
        assert account.display_name == "nueva@justicia.example"
        assert account.email == "nueva@justicia.example"
        assert account.is_active
        assert account.password_hash != "segura-456"
        assert password_hasher.verify(account.password_hash, "segura-456")
        assert operator_store.accounts[account.operator_id] == account
        assert operator_store.commits == 1

    @pytest.mark.asyncio
    async def test_creates_admin(self, operator_accounts, admin):
        """Test an administrator is created without a jurisdiction."""
        account = await operator_accounts.create_operator(
            admin,
            NewOperator(
                username="jefa@justicia.example",
                password="segura-456",
                role=OperatorRole.ADMIN,
                display_name="Jefa de Mesa",
            ),
        )

        assert account.role is OperatorRole.ADMIN
        assert account.jurisdiction_id is None
        assert account.display_name == "Jefa de Mesa"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("role", "jurisdiction_id", "message"),
        [
            (OperatorRole.OPERATOR, None, "must be assigned a jurisdiction"),
            (OperatorRole.ADMIN, 1, "cannot be assigned a jurisdiction"),
            (OperatorRole.OPERATOR, 42, "Jurisdiction 42 does not exist"),
        ],
    )
    async def test_role_rules(
        self, operator_accounts, operator_store, admin, role, jurisdiction_id, message
    ):
        """Test role and jurisdiction must agree and the jurisdiction must exist."""
        with pytest.raises(InvalidOperatorError, match=message):
            await operator_accounts.create_operator(
                admin,
                NewOperator(
                    username="x@justicia.example",
                    password="segura-456",
                    role=role,
                    jurisdiction_id=jurisdiction_id,
                ),
            )

        assert operator_store.commits == 0

    @pytest.mark.asyncio
    async def test_duplicate_username(self, operator_accounts, admin):
        """Test a username differing only in case is a duplicate."""
        with pytest.raises(DuplicateOperatorError):
            await operator_accounts.create_operator(
                admin,
                NewOperator(
                    username="Operador.SFE",
                    password="segura-456",
                    role=OperatorRole.OPERATOR,
                    jurisdiction_id=1,
                ),
            )

    @pytest.mark.asyncio
    async def test_requires_admin(self, operator_accounts, santa_fe_operator):
        """Test restricted operators cannot create accounts."""
        with pytest.raises(AdminRequiredError):
            await operator_accounts.create_operator(
                santa_fe_operator,
                NewOperator(
                    username="x@justicia.example",
                    password="segura-456",
                    role=OperatorRole.OPERATOR,
                    jurisdiction_id=1,
                ),
            )


class TestSetActive:
    """Tests for OperatorAccountService.set_active."""

    @pytest.mark.asyncio
    async def test_deactivation_revokes_sessions(
        self, operator_accounts, operator_sessions, admin, rosario_operator
    ):
        """Test deactivating an operator revokes every session they hold."""
        issued = await operator_sessions.issue(rosario_operator.operator_id)

        account = await operator_accounts.set_active(admin, rosario_operator.operator_id, False)

        assert not account.is_active
        assert operator_sessions.active_tokens(rosario_operator.operator_id) == []
        for token in (ROSARIO_TOKEN, issued.access_token):
            with pytest.raises(TokenInvalidError):
                await operator_sessions.resolve(token)

    @pytest.mark.asyncio
    async def test_activation_keeps_sessions(
        self, operator_accounts, operator_sessions, admin, rosario_operator
    ):
        """Test activating an operator does not touch their sessions."""
        account = await operator_accounts.set_active(admin, rosario_operator.operator_id, True)

        assert account.is_active
        assert operator_sessions.active_tokens(rosario_operator.operator_id) == [ROSARIO_TOKEN]

    @pytest.mark.asyncio
    async def test_self_deactivation(self, operator_accounts, operator_store, admin):
        """Test an administrator cannot deactivate themselves."""
        with pytest.raises(InvalidOperatorError):
            await operator_accounts.set_active(admin, admin.operator_id, False)

        assert operator_store.accounts[admin.operator_id].is_active

    @pytest.mark.asyncio
    async def test_unknown_operator(self, operator_accounts, admin):
        """Test an unknown operator id raises OperatorNotFoundError."""
        with pytest.raises(OperatorNotFoundError):
            await operator_accounts.set_active(admin, uuid.uuid4(), True)

    @pytest.mark.asyncio
    async def test_requires_admin(self, operator_accounts, santa_fe_operator, rosario_operator):
        """Test restricted operators cannot change account status."""
        with pytest.raises(AdminRequiredError):
            await operator_accounts.set_active(
                santa_fe_operator, rosario_operator.operator_id, False
            )
