"""
Stripe payment service for off-session credit top-ups.

Captures charges against a stored payment method with no customer present
and classifies the outcome into the small set of states the auto-recharge
job acts on.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import stripe

from ....platform.config import settings

logger = logging.getLogger(__name__)

CHARGE_SUCCEEDED = "succeeded"
CHARGE_REQUIRES_ACTION = "requires_action"
CHARGE_DECLINED = "declined"
CHARGE_ERROR = "error"

AUTHENTICATION_REQUIRED = "authentication_required"


@dataclass(frozen=True)
class ChargeResult:
    status: str
    transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == CHARGE_SUCCEEDED


def _payment_intent_id_from_error(exc: stripe.StripeError) -> Optional[str]:
    error = getattr(exc, "error", None)
    payment_intent = getattr(error, "payment_intent", None) if error is not None else None
    if payment_intent is None:
        return None
    if isinstance(payment_intent, dict):
        return payment_intent.get("id")
    return getattr(payment_intent, "id", None)


class StripeService:
    """Service for capturing off-session payments through Stripe."""

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float | None = None,
        max_network_retries: int | None = None,
    ):
        """
        Initialise the Stripe service.

        Args:
            api_key: Stripe secret API key.
            timeout_seconds: Upper bound for one API call; defaults to settings.
            max_network_retries: Client-side retries; defaults to settings.
        """
        stripe.api_key = api_key
        timeout = float(timeout_seconds if timeout_seconds is not None else settings.STRIPE_TIMEOUT_SECONDS)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = int(
            max_network_retries if max_network_retries is not None else settings.STRIPE_MAX_NETWORK_RETRIES
        )
        logger.info("StripeService initialised (timeout=%.1fs)", timeout)

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
    ) -> ChargeResult:
        """
        Create and confirm a PaymentIntent without the customer present.

        Args:
            amount_minor_units: Charge amount in minor units (cents).
            currency: ISO currency code, lower case.
            customer_profile_ref: Stripe customer ID.
            payment_method_ref: Stripe payment method ID stored for the customer.
            description: Statement description shown in the dashboard.
            metadata: String-valued metadata attached to the PaymentIntent.
            idempotency_key: Key collapsing repeated attempts into one PaymentIntent.

        Returns:
            ChargeResult with status succeeded, requires_action, declined or error.
        """
        try:
            logger.info(
                "Creating off-session charge (customer_id=%s, amount=%d %s-minor-units)",
                customer_profile_ref,
                amount_minor_units,
                currency,
                extra={"idempotency_key": idempotency_key},
            )

            payment_intent = stripe.PaymentIntent.create(
                amount=int(amount_minor_units),
                currency=currency.lower(),
                customer=customer_profile_ref,
                payment_method=payment_method_ref,
                off_session=True,
                confirm=True,
                description=description,
                metadata={key: str(value) for key, value in (metadata or {}).items()},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            code = getattr(e, "code", None)
            transaction_id = _payment_intent_id_from_error(e)
            if code == AUTHENTICATION_REQUIRED:
                logger.warning(
                    "Off-session charge requires authentication (customer_id=%s)",
                    customer_profile_ref,
                    extra={"transaction_id": transaction_id},
                )
                return ChargeResult(
                    status=CHARGE_REQUIRES_ACTION,
                    transaction_id=transaction_id,
                    error_code=code,
                    message=getattr(e, "user_message", None) or str(e),
                )
            logger.warning(
                "Off-session charge declined (customer_id=%s, code=%s)",
                customer_profile_ref,
                code,
                extra={"transaction_id": transaction_id},
            )
            return ChargeResult(
                status=CHARGE_DECLINED,
                transaction_id=transaction_id,
                error_code=code,
                message=getattr(e, "user_message", None) or str(e),
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating off-session charge: %s", str(e))
            return ChargeResult(
                status=CHARGE_ERROR,
                error_code=getattr(e, "code", None) or type(e).__name__,
                message=str(e),
            )
        except Exception as e:
            logger.error("Unexpected error creating off-session charge: %s", str(e))
            return ChargeResult(status=CHARGE_ERROR, error_code=type(e).__name__, message=str(e))

        status = getattr(payment_intent, "status", None)
        transaction_id = getattr(payment_intent, "id", None)
        logger.info(
            "PaymentIntent created (id=%s, status=%s)",
            transaction_id,
            status,
            extra={"transaction_id": transaction_id},
        )
        if status == "succeeded" and transaction_id:
            return ChargeResult(status=CHARGE_SUCCEEDED, transaction_id=transaction_id)
        if status == "requires_action":
            return ChargeResult(
                status=CHARGE_REQUIRES_ACTION,
                transaction_id=transaction_id,
                error_code=AUTHENTICATION_REQUIRED,
                message="Payment requires customer authentication",
            )
        if status == "requires_payment_method":
            return ChargeResult(
                status=CHARGE_DECLINED,
                transaction_id=transaction_id,
                error_code="requires_payment_method",
                message="Payment method was declined",
            )
        return ChargeResult(
            status=CHARGE_ERROR,
            transaction_id=transaction_id,
            error_code="unexpected_status",
            message=f"Payment status {status}",
        )
