"""
Stripe payment gateway.

Thin async wrapper around the ``stripe`` SDK. Calls are blocking HTTP
requests, so they run in a worker thread. Bookings are charged on the
platform account with the organization's connected account as transfer
destination; the platform keeps ``APPLICATION_FEE_PERCENT``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import stripe

from booking_engine.config import APPLICATION_FEE_PERCENT, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)

# Intent states in which no money has moved yet; cancelling is enough.
UNCAPTURED_STATES = frozenset({"requires_payment_method", "requires_confirmation", "requires_action"})


def calculate_application_fee(amount_cents: int, percent: float = APPLICATION_FEE_PERCENT) -> int:
    return round(amount_cents * percent / 100)


class StripeGateway:
    def __init__(self, api_key: str = STRIPE_SECRET_KEY, webhook_secret: str = STRIPE_WEBHOOK_SECRET) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    @property
    def webhook_secret(self) -> str:
        return self._webhook_secret

    async def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        destination_account: str,
        metadata: dict[str, str],
        description: str | None = None,
    ) -> Any:
        fee = calculate_application_fee(amount_cents)
        intent = await asyncio.to_thread(
            stripe.PaymentIntent.create,
            api_key=self._api_key,
            amount=amount_cents,
            currency=currency.lower(),
            description=description,
            metadata=metadata,
            transfer_data={"destination": destination_account},
            application_fee_amount=fee,
            automatic_payment_methods={"enabled": True},
        )
        logger.info("Created PaymentIntent %s for %d %s (fee %d)", intent["id"], amount_cents, currency, fee)
        return intent

    async def retrieve_payment_intent(self, payment_intent_id: str) -> Any:
        return await asyncio.to_thread(stripe.PaymentIntent.retrieve, payment_intent_id, api_key=self._api_key)

    async def cancel_payment_intent(self, payment_intent_id: str) -> Any:
        logger.info("Cancelling PaymentIntent %s", payment_intent_id)
        return await asyncio.to_thread(stripe.PaymentIntent.cancel, payment_intent_id, api_key=self._api_key)

    async def create_refund(
        self,
        *,
        charge: str | None = None,
        payment_intent: str | None = None,
        amount_cents: int | None = None,
    ) -> Any:
        params: dict[str, Any] = {}
        if charge:
            params["charge"] = charge
        elif payment_intent:
            params["payment_intent"] = payment_intent
        else:
            raise ValueError("A refund needs a charge or a payment intent")
        if amount_cents is not None:
            params["amount"] = amount_cents
        refund = await asyncio.to_thread(stripe.Refund.create, api_key=self._api_key, **params)
        logger.info("Created refund %s (%s cents)", refund["id"], amount_cents if amount_cents is not None else "full")
        return refund

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """Verify a webhook signature; raises ValueError or stripe.SignatureVerificationError."""
        return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
