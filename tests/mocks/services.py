"""
In-memory stand-in for the Stripe gateway.

Every gateway method is an ``AsyncMock`` backed by a dict of intents, so
tests can both drive state (``mark_succeeded``) and assert on calls.
"""

from __future__ import annotations

import itertools
from typing import Any
from unittest.mock import AsyncMock, MagicMock


class FakeGateway:
    def __init__(self, webhook_secret: str = "") -> None:
        self.webhook_secret = webhook_secret
        self.intents: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

        self.create_payment_intent = AsyncMock(side_effect=self._create_payment_intent)
        self.retrieve_payment_intent = AsyncMock(side_effect=self._retrieve_payment_intent)
        self.cancel_payment_intent = AsyncMock(side_effect=self._cancel_payment_intent)
        self.create_refund = AsyncMock(side_effect=self._create_refund)
        self.construct_event = MagicMock()

    # ── Test controls ─────────────────────────────────────────────────

    def add_intent(self, status: str = "requires_payment_method", **fields: Any) -> dict[str, Any]:
        intent_id = f"pi_{next(self._ids)}"
        intent = {
            "id": intent_id,
            "status": status,
            "client_secret": f"{intent_id}_secret",
            "currency": "cad",
            "latest_charge": None,
            **fields,
        }
        self.intents[intent_id] = intent
        return intent

    def mark_succeeded(self, intent_id: str, charge_id: str = "ch_1") -> None:
        self.intents[intent_id].update(status="succeeded", latest_charge=charge_id)

    # ── Gateway surface ───────────────────────────────────────────────

    async def _create_payment_intent(self, *, amount_cents: int, currency: str, **kwargs: Any) -> dict[str, Any]:
        return self.add_intent(amount=amount_cents, currency=currency.lower(), metadata=kwargs.get("metadata"))

    async def _retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        return self.intents[payment_intent_id]

    async def _cancel_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        intent = self.intents[payment_intent_id]
        intent["status"] = "canceled"
        return intent

    async def _create_refund(
        self,
        *,
        charge: str | None = None,
        payment_intent: str | None = None,
        amount_cents: int | None = None,
    ) -> dict[str, Any]:
        return {"id": f"re_{next(self._ids)}", "charge": charge, "amount": amount_cents}
