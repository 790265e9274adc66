"""Payment gateway webhook router.

PlusPagos notifies payment results here. The raw body is authenticated
with an HMAC-SHA256 signature before it is parsed. Redeliveries of a
notification that was already applied answer 200 with result=duplicate so
the gateway stops retrying.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from rdam.api.dependencies import AppSettings, Coordinator, get_payment_gateway
from rdam.api.schemas.webhooks import PlusPagosNotification, WebhookAck
from rdam.services.payments import (
    SIGNATURE_HEADER,
    PaymentGateway,
    PaymentOutcome,
    interpret_status_code,
    verify_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/pluspagos",
    response_model=WebhookAck,
    summary="PlusPagos payment notification",
)
async def pluspagos_webhook(
    request: Request,
    coordinator: Coordinator,
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    settings: AppSettings,
) -> WebhookAck:
    body = await request.body()
    if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), gateway.webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        notification = PlusPagosNotification.model_validate_json(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_context=False)) from e

    outcome = interpret_status_code(notification.status_code)
    approved = outcome is PaymentOutcome.APPROVED
    if approved and notification.amount != settings.lifecycle.fee_amount:
        logger.warning(
            "Approved payment amount differs from the fee: order_ref=%s, amount=%s, fee=%s",
            notification.order_ref,
            notification.amount,
            settings.lifecycle.fee_amount,
        )

    result = await coordinator.record_payment(
        notification.order_ref, approved, notification.amount
    )
    logger.info(
        "Payment notification processed: order_ref=%s, outcome=%s, result=%s",
        notification.order_ref,
        outcome.value,
        result.value,
    )
    return WebhookAck(result=result)
