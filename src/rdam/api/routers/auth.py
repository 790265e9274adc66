"""Authentication router for internal operators.

- POST /auth/login - Check username and password, issue a bearer session
- POST /auth/logout - Revoke the presented bearer session

The bearer token returned by login authorizes the /interno endpoints until
it expires, is revoked at logout, or the operator is deactivated.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from rdam.api.dependencies import AppSettings, BearerToken, CurrentOperator, OperatorAccounts
from rdam.api.schemas.operadores import LoginRequest, LoginResponse, LogoutResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Forbidden"},
        500: {"description": "Internal server error"},
    },
)


@router.post("/login", response_model=LoginResponse, summary="Operator login")
async def login(
    body: LoginRequest,
    accounts: OperatorAccounts,
    settings: AppSettings,
) -> LoginResponse:
    """Exchange operator credentials for a bearer token.

    Unknown usernames and wrong passwords get the same 401 answer; a
    deactivated operator with the right password gets 403.
    """
    result = await accounts.login(body.username, body.password)
    return LoginResponse(
        access_token=result.session.access_token,
        expires_in=settings.operator_session_hours * 3600,
        expires_at=result.session.expires_at,
        role=result.account.role,
        jurisdiction_id=result.account.jurisdiction_id,
    )


@router.post("/logout", response_model=LogoutResponse, summary="Operator logout")
async def logout(
    operator: CurrentOperator,
    token: BearerToken,
    accounts: OperatorAccounts,
) -> LogoutResponse:
    """Revoke the session; the token is rejected from now on."""
    revoked = await accounts.logout(token)
    logger.info("Operator logged out: operator_id=%s", operator.operator_id)
    return LogoutResponse(success=revoked)
