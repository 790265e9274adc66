"""Operator administration router.

Administrators create operator accounts and activate or deactivate them.
Any other operator is answered 403.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, status

from rdam.api.dependencies import CurrentOperator, OperatorAccounts
from rdam.api.schemas.operadores import CreateOperatorBody, OperatorResponse, OperatorStatusBody
from rdam.services.operator_accounts import NewOperator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/interno/operadores", tags=["interno"])


@router.post(
    "",
    response_model=OperatorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an operator",
    responses={
        400: {"description": "Role and jurisdiction do not agree"},
        409: {"description": "Username already exists"},
    },
)
async def create_operator(
    body: CreateOperatorBody,
    operator: CurrentOperator,
    accounts: OperatorAccounts,
) -> OperatorResponse:
    """Create an active operator.

    Operators must name an existing jurisdiction; administrators must not
    name any.
    """
    account = await accounts.create_operator(
        operator,
        NewOperator(
            username=body.username,
            password=body.password,
            role=body.role,
            jurisdiction_id=body.jurisdiction_id,
            display_name=body.display_name,
        ),
    )
    return OperatorResponse.from_account(account)


@router.patch(
    "/{operator_id}/estado",
    response_model=OperatorResponse,
    summary="Activate or deactivate an operator",
    responses={
        400: {"description": "An administrator cannot deactivate themselves"},
        404: {"description": "Operator not found"},
    },
)
async def set_operator_status(
    operator_id: UUID,
    body: OperatorStatusBody,
    operator: CurrentOperator,
    accounts: OperatorAccounts,
) -> OperatorResponse:
    """Deactivating an operator also ends all of their sessions."""
    account = await accounts.set_active(operator, operator_id, body.active)
    return OperatorResponse.from_account(account)
