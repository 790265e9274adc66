"""Pydantic schemas for operator login and administration."""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from rdam.db.models.base import OperatorRole  # noqa: TC001

if TYPE_CHECKING:
    from rdam.services.operator_accounts import OperatorAccount


class LoginRequest(BaseModel):
    """Operator credentials."""

    username: str = Field(..., min_length=1, max_length=100, description="Login name")
    password: str = Field(..., min_length=1, max_length=256, description="Password")


class LoginResponse(BaseModel):
    """Bearer session issued at login.

    The token is shown only here; the server keeps its hash.
    """

    access_token: str = Field(..., description="Bearer token for /interno endpoints")
    token_type: str = Field("Bearer", description="Authorization scheme")
    expires_in: int = Field(..., description="Seconds until the session expires")
    expires_at: datetime = Field(..., description="Session expiry timestamp")
    role: OperatorRole = Field(..., description="Operator role")
    jurisdiction_id: int | None = Field(None, description="Bound jurisdiction, none for admins")


class LogoutResponse(BaseModel):
    """Result of a logout."""

    success: bool = Field(..., description="Whether an active session was revoked")


class CreateOperatorBody(BaseModel):
    """New operator account.

    The username is the operator's institutional email address.
    """

    username: EmailStr = Field(..., description="Institutional email, used to log in")
    password: str = Field(..., min_length=8, max_length=256, description="Initial password")
    role: OperatorRole = Field(..., description="operator or admin")
    jurisdiction_id: int | None = Field(
        None, ge=1, description="Required for operators, omitted for admins"
    )
    display_name: str | None = Field(None, max_length=255, description="Name shown in the panel")


class OperatorStatusBody(BaseModel):
    active: bool = Field(..., description="True to activate, false to deactivate")


class OperatorResponse(BaseModel):
    """An operator account. Password hashes are never returned."""

    operator_id: UUID = Field(..., description="Operator identifier")
    username: str = Field(..., description="Login name")
    display_name: str = Field(..., description="Name shown in the panel")
    role: OperatorRole = Field(..., description="Operator role")
    jurisdiction_id: int | None = Field(None, description="Bound jurisdiction")
    is_active: bool = Field(..., description="Whether the operator may log in")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_account(cls, account: OperatorAccount) -> OperatorResponse:
        return cls.model_validate(account)
