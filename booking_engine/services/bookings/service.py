"""
Booking creation, payment callbacks and staff status changes.

Creation validates the candidate, decides whether payment is needed,
opens a PaymentIntent when it is and inserts the booking.  The store's
no-overlap rule makes the insert the single point where concurrent
requests for the same slot are decided.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from booking_engine import db
from booking_engine.config import DEFAULT_CURRENCY
from booking_engine.errors import (
    BookingNotFoundError,
    PaymentSetupError,
    PermissionDeniedError,
    SlotAlreadyBookedError,
)
from booking_engine.models import Booking, BookingCreate, BookingStatus, BookingType
from booking_engine.services.bookings.state_machine import apply_payment_result, initial_status, transition
from booking_engine.services.bookings.validator import BookingCandidate, BookingValidator
from booking_engine.services.notifications import BookingNotifier, notifier as default_notifier
from booking_engine.services.payments import StripeGateway

logger = logging.getLogger(__name__)

STAFF_ROLES = ("owner", "admin", "staff")


@dataclass
class CreatedBooking:
    booking: Booking
    client_secret: str | None = None


def should_skip_payment(skip_payment: bool | None, price_cents: int, is_staff_booking: bool) -> bool:
    """Free slots never charge; staff bookings skip payment unless explicitly asked not to."""
    return bool(skip_payment) or price_cents == 0 or (is_staff_booking and skip_payment is not False)


class BookingService:
    def __init__(
        self,
        gateway: StripeGateway,
        validator: BookingValidator | None = None,
        notifier: BookingNotifier = default_notifier,
    ) -> None:
        self._gateway = gateway
        self._validator = validator or BookingValidator()
        self._notifier = notifier

    # ── Create ────────────────────────────────────────────────────────

    async def _require_staff(self, organization_id: str, user_id: str, message: str) -> None:
        role = await db.get_member_role(organization_id, user_id)
        if role not in STAFF_ROLES:
            raise PermissionDeniedError(message)

    async def create(self, request: BookingCreate, user_id: str) -> CreatedBooking:
        court = await db.get_court(request.court_id)
        organization_id = court["organization_id"] if court else None

        player_id: str | None = user_id
        booking_type = BookingType.player
        if organization_id and request.player_id and request.player_id != user_id:
            await self._require_staff(
                organization_id, user_id, "Only organization staff can create bookings for other players"
            )
            player_id = request.player_id
            booking_type = BookingType.staff
        elif organization_id and request.guest_name and not request.player_id:
            await self._require_staff(organization_id, user_id, "Only organization staff can create guest bookings")
            player_id = None
            booking_type = BookingType.guest
        is_staff_booking = booking_type != BookingType.player

        validated = await self._validator.validate(
            BookingCandidate(
                court_id=request.court_id,
                booking_date=request.booking_date,
                start_time=request.start_time,
                end_time=request.end_time,
                player_id=player_id,
            )
        )
        organization_id = validated.organization_id
        price_cents = validated.slot.price_cents

        settings = await db.get_organization_settings(organization_id)
        requires_approval = bool(settings and settings["require_booking_approval"]) and not is_staff_booking
        skip_payment = should_skip_payment(request.skip_payment, price_cents, is_staff_booking)

        stripe_account_id = None
        if not skip_payment:
            account = await db.get_stripe_account(organization_id)
            if not account or not account["charges_enabled"]:
                raise PaymentSetupError(
                    f"This slot costs ${price_cents / 100:.2f} but the organization hasn't set up "
                    "payments yet. Please contact the facility or choose a free slot."
                )
            stripe_account_id = account["stripe_account_id"]

        status = initial_status(skip_payment, requires_approval)
        start_time = db.normalize_time(request.start_time)
        end_time = db.normalize_time(request.end_time)

        intent = None
        if stripe_account_id:
            intent = await self._gateway.create_payment_intent(
                amount_cents=price_cents,
                currency=DEFAULT_CURRENCY,
                destination_account=stripe_account_id,
                description=f"Court booking for {request.booking_date.isoformat()}",
                metadata={
                    "court_id": request.court_id,
                    "organization_id": organization_id,
                    "player_id": player_id or "guest",
                    "booking_date": request.booking_date.isoformat(),
                    "start_time": start_time,
                    "end_time": end_time,
                },
            )

        try:
            booking = await db.insert_booking(
                {
                    "organization_id": organization_id,
                    "court_id": request.court_id,
                    "player_id": player_id,
                    "booking_date": request.booking_date,
                    "start_time": start_time,
                    "end_time": end_time,
                    "status": status,
                    "booking_type": booking_type,
                    "price_cents": price_cents,
                    "currency": DEFAULT_CURRENCY,
                    "stripe_payment_intent_id": intent["id"] if intent else None,
                    "requires_approval": int(requires_approval),
                    "notes": request.notes,
                    "guest_name": request.guest_name if booking_type == BookingType.guest else None,
                }
            )
        except Exception as exc:
            if intent is not None:
                await self._cancel_orphan_intent(intent["id"])
            if isinstance(exc, SlotAlreadyBookedError):
                logger.info("Lost booking race for court %s on %s %s", request.court_id, request.booking_date, start_time)
            raise

        logger.info("Created booking %s (%s) on court %s", booking.id, booking.status.value, booking.court_id)
        await self._notifier.booking_created(booking)
        if booking.status == BookingStatus.confirmed:
            await self._notifier.booking_confirmed(booking)
        return CreatedBooking(booking=booking, client_secret=intent.get("client_secret") if intent else None)

    async def _cancel_orphan_intent(self, payment_intent_id: str) -> None:
        try:
            await self._gateway.cancel_payment_intent(payment_intent_id)
        except Exception:
            logger.exception("Failed to cancel PaymentIntent %s after insert failure", payment_intent_id)

    # ── Payment callbacks ─────────────────────────────────────────────

    async def handle_payment_result(
        self,
        payment_intent_id: str,
        succeeded: bool,
        charge_id: str | None = None,
    ) -> Booking | None:
        """
        Apply a gateway payment outcome. Idempotent: replays, late events and
        unknown intents are logged no-ops.
        """
        booking = await db.get_booking_by_payment_intent(payment_intent_id)
        if booking is None:
            logger.warning("Payment callback for unknown PaymentIntent %s ignored", payment_intent_id)
            return None

        new_status = apply_payment_result(booking.status, succeeded)
        if new_status is None:
            logger.info(
                "Payment callback for booking %s ignored (already %s)", booking.id, booking.status.value
            )
            return booking

        fields: dict = {"status": new_status}
        if charge_id:
            fields["stripe_charge_id"] = charge_id
        updated = await db.update_booking(booking.id, **fields)
        if updated is None:
            logger.warning("Booking %s vanished during payment callback", booking.id)
            return None
        logger.info("Booking %s -> %s via payment callback", booking.id, new_status.value)
        if new_status == BookingStatus.confirmed:
            await self._notifier.booking_confirmed(updated)
        return updated

    # ── Staff transitions ─────────────────────────────────────────────

    async def update_status(self, booking_id: str, requested: BookingStatus, user_id: str) -> Booking:
        """Approve, complete or mark no-show. Cancellation goes through CancellationService."""
        booking = await db.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        await self._require_staff(booking.organization_id, user_id, "Only organization staff can update bookings")

        new_status = transition(booking.status, requested)
        if new_status == BookingStatus.cancelled:
            raise PermissionDeniedError("Use the cancel endpoint to cancel bookings")

        updated = await db.update_booking(booking.id, status=new_status)
        if updated is None:
            raise BookingNotFoundError(booking.id)
        logger.info("Booking %s: %s -> %s by %s", booking.id, booking.status.value, new_status.value, user_id)
        if new_status == BookingStatus.confirmed:
            await self._notifier.booking_confirmed(updated)
        return updated

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_for_user(self, booking_id: str, user_id: str) -> Booking:
        booking = await db.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if booking.player_id != user_id:
            await self._require_staff(booking.organization_id, user_id, "You do not have access to this booking")
        return booking

    async def list_for_organization(
        self,
        organization_id: str,
        user_id: str,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        statuses: list[str] | None = None,
        booking_type: str | None = None,
        court_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        await self._require_staff(organization_id, user_id, "Only organization staff can list bookings")
        return await db.list_bookings(
            organization_id,
            date_from=date_from,
            date_to=date_to,
            statuses=statuses,
            booking_type=booking_type,
            court_id=court_id,
            limit=limit,
            offset=offset,
        )

    async def list_for_player(
        self,
        player_id: str,
        *,
        upcoming: bool,
        today: date,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], bool]:
        """One page of a player's bookings plus whether more exist."""
        rows = await db.list_player_bookings(
            player_id, upcoming=upcoming, today=today, limit=limit + 1, offset=offset
        )
        return rows[:limit], len(rows) > limit
