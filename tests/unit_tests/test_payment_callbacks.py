"""Tests for payment outcome handling and the Stripe webhook endpoint."""

from datetime import date

import pytest
import stripe

from booking_engine import db
from booking_engine.models import BookingStatus
from booking_engine.services.bookings.service import BookingService
from tests.mocks.models import PLAYER_ID
from tests.mocks.seed import add_booking, seed_organization
from tests.mocks.services import FakeGateway

DAY = date(2030, 6, 3)


def _event(event_type: str, intent_id: str, **fields) -> dict:
    return {"type": event_type, "data": {"object": {"id": intent_id, **fields}}}


@pytest.fixture()
async def pending_booking(database):
    await seed_organization()
    return await add_booking(DAY, status="pending", price_cents=2500, stripe_payment_intent_id="pi_42")


class TestHandlePaymentResult:
    async def test_success_confirms_once(self, pending_booking):
        service = BookingService(FakeGateway())

        first = await service.handle_payment_result("pi_42", True, "ch_9")
        assert first.status == BookingStatus.confirmed
        assert first.stripe_charge_id == "ch_9"

        replay = await service.handle_payment_result("pi_42", True, "ch_9")
        assert replay.status == BookingStatus.confirmed
        assert replay.updated_at == first.updated_at

        notified = [n["type"] for n in await db.list_notifications(PLAYER_ID)]
        assert notified == ["booking_confirmed"]

    async def test_failure_cancels(self, pending_booking):
        updated = await BookingService(FakeGateway()).handle_payment_result("pi_42", False)
        assert updated.status == BookingStatus.cancelled

    async def test_late_failure_after_success_is_noop(self, pending_booking):
        service = BookingService(FakeGateway())
        await service.handle_payment_result("pi_42", True)
        late = await service.handle_payment_result("pi_42", False)
        assert late.status == BookingStatus.confirmed

    async def test_unknown_intent(self, database):
        assert await BookingService(FakeGateway()).handle_payment_result("pi_unknown", True) is None


class TestWebhookEndpoint:
    def _seed(self, run):
        run(seed_organization)
        return run(add_booking, DAY, status="pending", stripe_payment_intent_id="pi_7")

    def test_succeeded_event_confirms_booking(self, client, run):
        booking = self._seed(run)
        resp = client.post(
            "/api/payments/webhook",
            json=_event("payment_intent.succeeded", "pi_7", latest_charge="ch_7"),
        )
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

        stored = client.get(f"/api/bookings/{booking.id}").json()
        assert stored["status"] == "confirmed"
        assert stored["stripe_charge_id"] == "ch_7"

    def test_failed_event_cancels_booking(self, client, run):
        booking = self._seed(run)
        client.post("/api/payments/webhook", json=_event("payment_intent.payment_failed", "pi_7"))
        assert client.get(f"/api/bookings/{booking.id}").json()["status"] == "cancelled"

    def test_replayed_event_is_acknowledged(self, client, run):
        self._seed(run)
        payload = _event("payment_intent.succeeded", "pi_7")
        assert client.post("/api/payments/webhook", json=payload).status_code == 200
        assert client.post("/api/payments/webhook", json=payload).status_code == 200

    def test_unhandled_event_type(self, client):
        resp = client.post("/api/payments/webhook", json=_event("charge.refunded", "ch_1"))
        assert resp.status_code == 200

    def test_invalid_json_without_secret(self, client):
        resp = client.post("/api/payments/webhook", content=b"not json")
        assert resp.status_code == 400

    def test_signature_checked_when_secret_configured(self, client, gateway):
        gateway.webhook_secret = "whsec_test"
        gateway.construct_event.side_effect = stripe.SignatureVerificationError("bad sig", "sig")

        resp = client.post(
            "/api/payments/webhook",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid signature"
        gateway.construct_event.assert_called_once_with(b"{}", "t=1,v1=deadbeef")

    def test_verified_event_is_processed(self, client, gateway, run):
        booking = self._seed(run)
        gateway.webhook_secret = "whsec_test"
        gateway.construct_event.return_value = _event("payment_intent.succeeded", "pi_7")

        resp = client.post("/api/payments/webhook", content=b"signed", headers={"Stripe-Signature": "sig"})
        assert resp.status_code == 200
        assert client.get(f"/api/bookings/{booking.id}").json()["status"] == "confirmed"
