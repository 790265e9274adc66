"""Pydantic schemas for the RDAM API.

This package contains request/response schemas organized by API namespace.
"""

from rdam.api.schemas.interno import (
    PublishResponse,
    RegenerateTokenResponse,
    RequestListResponse,
    RequestSummary,
)
from rdam.api.schemas.operadores import (
    CreateOperatorBody,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    OperatorResponse,
    OperatorStatusBody,
)
from rdam.api.schemas.solicitudes import (
    CreateRequestBody,
    CreateRequestResponse,
    PaymentOrderResponse,
    StatusResponse,
    VerifyCodeBody,
    VerifyCodeResponse,
)
from rdam.api.schemas.webhooks import PlusPagosNotification, WebhookAck

__all__ = [
    "CreateOperatorBody",
    "CreateRequestBody",
    "CreateRequestResponse",
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "OperatorResponse",
    "OperatorStatusBody",
    "PaymentOrderResponse",
    "PlusPagosNotification",
    "PublishResponse",
    "RegenerateTokenResponse",
    "RequestListResponse",
    "RequestSummary",
    "StatusResponse",
    "VerifyCodeBody",
    "VerifyCodeResponse",
    "WebhookAck",
]
