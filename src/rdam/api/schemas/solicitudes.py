"""Pydantic schemas for the citizen-facing request endpoints.

Citizens submit a request, confirm their email address with the emailed
code, check the status and open a payment order. Internal storage
references are never exposed; the download link only appears while the
certificate is published.
"""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from rdam.db.models.base import RequestState  # noqa: TC001

# -----------------------------------------------------------------------------
# Request creation
# -----------------------------------------------------------------------------


class CreateRequestBody(BaseModel):
    """Request schema for submitting a certificate request."""

    subject_id: str = Field(
        ...,
        pattern=r"^[0-9]{7,11}$",
        description="DNI (7-8 digits) or CUIL (11 digits) of the person concerned",
    )
    email: EmailStr = Field(..., max_length=255, description="Citizen contact email")
    jurisdiction_id: int = Field(..., ge=1, description="Judicial jurisdiction id")

    model_config = ConfigDict(extra="forbid")


class CreateRequestResponse(BaseModel):
    """Response schema for a newly created request."""

    request_id: UUID = Field(..., description="Internal request identifier")
    tramite_number: str = Field(..., description="Public trámite number")
    state: RequestState = Field(..., description="Lifecycle state (always pending)")
    message: str = Field(
        "A verification code has been sent to your email address",
        description="Reminder for the citizen",
    )


# -----------------------------------------------------------------------------
# Email verification
# -----------------------------------------------------------------------------


class VerifyCodeBody(BaseModel):
    """Request schema for confirming the emailed verification code."""

    code: str = Field(..., pattern=r"^[0-9]{6}$", description="Six-digit verification code")

    model_config = ConfigDict(extra="forbid")


class VerifyCodeResponse(BaseModel):
    """Citizen session opened by a valid code."""

    access_token: str = Field(..., description="Bearer token for citizen endpoints")
    token_type: str = Field("bearer", description="Token type")
    tramite_number: str = Field(..., description="Trámite number the token is bound to")
    state: RequestState = Field(..., description="Current lifecycle state")


# -----------------------------------------------------------------------------
# Status and payment
# -----------------------------------------------------------------------------


class StatusResponse(BaseModel):
    """Public status of a request."""

    tramite_number: str = Field(..., description="Public trámite number")
    state: RequestState = Field(..., description="Current lifecycle state")
    jurisdiction_id: int = Field(..., description="Jurisdiction id")
    jurisdiction: str | None = Field(None, description="Jurisdiction name")
    created_at: datetime = Field(..., description="Submission timestamp")
    download_link: str | None = Field(
        None, description="Certificate download URL, present only while published"
    )


class PaymentOrderResponse(BaseModel):
    """Payment order the citizen is redirected to."""

    order_ref: str = Field(..., description="Gateway order reference")
    payment_url: str = Field(..., description="URL where the payment is completed")
    amount_cents: int = Field(..., description="Amount to pay, in cents")
    simulated: bool = Field(..., description="True when the gateway runs in sim mode")
