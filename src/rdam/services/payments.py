"""PlusPagos payment gateway adapter.

Creates payment orders for pending requests, verifies webhook signatures
and maps gateway status codes to an approved/rejected outcome. In sim mode
no network call is made: the order reference is generated locally and the
payment URL points at the gateway simulator.

Webhook signatures are the lowercase hex HMAC-SHA256 of the raw request
body, keyed with the shared secret, sent in X-PlusPagos-Signature.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from rdam.core.config import PaymentMode
from rdam.services.errors import PaymentGatewayUnavailableError

if TYPE_CHECKING:
    from rdam.core.config import PaymentSettings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-PlusPagos-Signature"

SIM_REF_PREFIX = "SIM-"


class PaymentOutcome(str, Enum):
    """Outcome of a payment as reported by the gateway."""

    APPROVED = "approved"
    REJECTED = "rejected"


# EstadoId values documented by the gateway
APPROVED_CODES = frozenset({0})
REJECTED_CODES = frozenset({4, 7, 8, 9, 11})


@dataclass(frozen=True, slots=True)
class PaymentOrder:
    """A payment order the citizen is redirected to.

    Attributes:
        order_ref: Gateway order reference (TransaccionComercioId).
        payment_url: Where the citizen completes the payment.
        amount_cents: Amount charged, in cents.
        simulated: True when created in sim mode.
    """

    order_ref: str
    payment_url: str
    amount_cents: int
    simulated: bool


def to_cents(amount: Decimal) -> int:
    """Convert a currency amount to integer cents (1500.00 -> 150000)."""
    return int((amount * 100).to_integral_value())


def interpret_status_code(code: int | str | None) -> PaymentOutcome:
    """Map a gateway EstadoId to an outcome.

    Codes outside the documented set are treated as rejected so that an
    unexpected gateway response never marks a request as paid.
    """
    try:
        value = int(code)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Non-numeric payment status code: %r", code)
        return PaymentOutcome.REJECTED

    if value in APPROVED_CODES:
        return PaymentOutcome.APPROVED
    if value not in REJECTED_CODES:
        logger.warning("Unknown payment status code %d, treating as rejected", value)
    return PaymentOutcome.REJECTED


def compute_signature(body: bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of a webhook body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check a webhook signature in constant time."""
    if not signature:
        logger.warning("Webhook received without a signature header")
        return False
    expected = compute_signature(body, secret)
    valid = hmac.compare_digest(expected.encode(), signature.strip().lower().encode())
    if not valid:
        logger.warning("Webhook signature mismatch")
    return valid


class PaymentGateway:
    """Creates payment orders according to the configured mode."""

    def __init__(self, settings: PaymentSettings) -> None:
        self._settings = settings

    @property
    def mode(self) -> PaymentMode:
        return self._settings.mode

    @property
    def webhook_secret(self) -> str:
        return self._settings.hmac_secret.get_secret_value()

    def create_order(self, tramite_number: str, amount: Decimal) -> PaymentOrder:
        """Create an order for a request.

        Raises:
            PaymentGatewayUnavailableError: In live mode, which has no
                gateway integration.
        """
        if self._settings.mode != PaymentMode.SIM:
            msg = "Live payment mode is not available"
            raise PaymentGatewayUnavailableError(msg)

        order_ref = SIM_REF_PREFIX + secrets.token_hex(8).upper()
        payment_url = self.payment_url(order_ref)
        logger.info(
            "Simulated payment order created: tramite=%s, order_ref=%s",
            tramite_number,
            order_ref,
        )
        return PaymentOrder(
            order_ref=order_ref,
            payment_url=payment_url,
            amount_cents=to_cents(amount),
            simulated=True,
        )

    def payment_url(self, order_ref: str) -> str:
        """URL where the citizen completes payment of an existing order."""
        return f"{self._settings.api_url.rstrip('/')}/sim/pago/{order_ref}"
