"""Citizen request router.

Public endpoints for submitting a request and confirming the email
address, plus citizen-token endpoints for status and payment. A citizen
token only opens the request it was issued for; any other request looks
missing.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from rdam.api.dependencies import (
    BearerToken,
    CitizenAccess,
    Coordinator,
    get_payment_gateway,
)
from rdam.api.schemas.solicitudes import (
    CreateRequestBody,
    CreateRequestResponse,
    PaymentOrderResponse,
    StatusResponse,
    VerifyCodeBody,
    VerifyCodeResponse,
)
from rdam.services.payments import PaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/solicitudes", tags=["solicitudes"])

Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]


@router.post(
    "",
    response_model=CreateRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a certificate request",
)
async def create_request(
    body: CreateRequestBody,
    coordinator: Coordinator,
    citizen_access: CitizenAccess,
) -> CreateRequestResponse:
    """Create a PENDING request and email a verification code."""
    record = await coordinator.create(body.subject_id, str(body.email), body.jurisdiction_id)
    await citizen_access.issue_verification_code(record)
    return CreateRequestResponse(
        request_id=record.request_id,
        tramite_number=record.tramite_number,
        state=record.state,
    )


@router.post(
    "/{request_id}/validar",
    response_model=VerifyCodeResponse,
    summary="Confirm the emailed verification code",
)
async def verify_code(
    request_id: UUID,
    body: VerifyCodeBody,
    citizen_access: CitizenAccess,
) -> VerifyCodeResponse:
    """Exchange a valid code for a citizen bearer token.

    A rejected code answers 401 with detail.reason set to expired,
    incorrect (with attempts_remaining) or attempts_exhausted.
    """
    session = await citizen_access.verify_code(request_id, body.code)
    return VerifyCodeResponse(
        access_token=session.access_token,
        tramite_number=session.tramite_number,
        state=session.state,
    )


@router.get(
    "/{tramite_number}",
    response_model=StatusResponse,
    summary="Request status",
)
async def get_status(
    tramite_number: str,
    token: BearerToken,
    coordinator: Coordinator,
    citizen_access: CitizenAccess,
) -> StatusResponse:
    await citizen_access.authorize_tramite(token, tramite_number)
    view = await coordinator.get_status(tramite_number)
    return StatusResponse(
        tramite_number=view.tramite_number,
        state=view.state,
        jurisdiction_id=view.jurisdiction_id,
        jurisdiction=view.jurisdiction_name,
        created_at=view.created_at,
        download_link=view.download_link,
    )


@router.post(
    "/{request_id}/pago",
    response_model=PaymentOrderResponse,
    summary="Create or fetch the payment order",
)
async def create_payment_order(
    request_id: UUID,
    token: BearerToken,
    coordinator: Coordinator,
    citizen_access: CitizenAccess,
    gateway: Gateway,
) -> PaymentOrderResponse:
    """Payment order of a pending request.

    Calling again returns the same order reference.
    """
    await citizen_access.authorize_request(token, request_id)
    order = await coordinator.create_payment_order(request_id, gateway)
    return PaymentOrderResponse(
        order_ref=order.order_ref,
        payment_url=order.payment_url,
        amount_cents=order.amount_cents,
        simulated=order.simulated,
    )
