from __future__ import annotations

from typing import Protocol

from ...components.integrations.stripe.service import ChargeResult, StripeService
from ...platform.config import settings


class PaymentGatewayAdapter(Protocol):
    def capture_off_session_charge(
        self,
        *,
        amount_minor_units: int,
        currency: str,
        customer_profile_ref: str,
        payment_method_ref: str,
        description: str,
        metadata: dict,
        idempotency_key: str,
    ) -> ChargeResult: ...


def build_payment_gateway_adapter() -> StripeService:
    return StripeService(
        settings.STRIPE_API_KEY,
        timeout_seconds=settings.STRIPE_TIMEOUT_SECONDS,
        max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
    )
