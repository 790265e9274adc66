"""Pydantic schemas for the PlusPagos payment webhook.

The gateway posts PascalCase fields; values arrive as strings or numbers
depending on the gateway version, so both are accepted.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rdam.services.lifecycle import PaymentRecordResult  # noqa: TC001


class PlusPagosNotification(BaseModel):
    """Payment notification sent by the gateway."""

    order_ref: str = Field(
        ...,
        alias="TransaccionComercioId",
        min_length=1,
        max_length=100,
        description="Order reference assigned when the order was created",
    )
    status_code: str = Field(..., alias="EstadoId", description="Gateway status code")
    amount: Decimal = Field(..., alias="Monto", ge=0, description="Amount paid")
    platform_ref: str | None = Field(
        None, alias="TransaccionPlataformaId", description="Gateway transaction id"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("status_code", "platform_ref", mode="before")
    @classmethod
    def coerce_to_str(cls, v: object) -> object:
        return str(v) if isinstance(v, int) else v

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v: object) -> object:
        if isinstance(v, str):
            try:
                return Decimal(v.strip())
            except InvalidOperation as e:
                msg = "Monto must be a decimal amount"
                raise ValueError(msg) from e
        return v


class WebhookAck(BaseModel):
    """Acknowledgement returned to the gateway."""

    result: PaymentRecordResult = Field(..., description="applied or duplicate")
