"""
Cancellation and refunds.

The refund amount comes from the organization's cancellation policy and
the time left before the booking starts.  What happens to the money then
depends on the payment's actual state at the gateway:

* not yet captured  -> the intent is cancelled, nothing to refund
* succeeded         -> the computed amount is refunded against the charge
* gateway failure   -> refund marked ``failed``; the booking is still cancelled

Bookings paid in installments refund installment by installment, oldest
first, until the computed amount is covered.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from booking_engine import db
from booking_engine.errors import BookingNotFoundError, BookingValidationError, PermissionDeniedError
from booking_engine.models import (
    Booking,
    BookingStatus,
    CancellationPolicy,
    CancellationResult,
    RefundStatus,
)
from booking_engine.services.bookings.state_machine import transition
from booking_engine.services.notifications import BookingNotifier, notifier as default_notifier
from booking_engine.services.payments import UNCAPTURED_STATES, StripeGateway

logger = logging.getLogger(__name__)

ORG_ADMIN_ROLES = ("owner", "admin")


# ── Policy ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RefundDecision:
    amount_cents: int
    percent: float


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_refund(price_cents: int, hours_until: float, policy: CancellationPolicy) -> RefundDecision:
    """
    Refund owed for cancelling ``hours_until`` hours before the start.

    Thresholds are inclusive: exactly ``free_cancellation_hours`` out is
    still a full refund.  Anything short of ``partial_refund_hours`` gets
    nothing, whatever ``no_refund_hours`` says.
    """
    if hours_until >= policy.free_cancellation_hours:
        return RefundDecision(price_cents, 100)
    if hours_until >= policy.partial_refund_hours:
        percent = policy.partial_refund_percent
        return RefundDecision(_round_half_up(price_cents * percent / 100), percent)
    return RefundDecision(0, 0)


def _fmt_percent(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ── Installments ──────────────────────────────────────────────────────────


@dataclass
class InstallmentRefundResult:
    refunds_processed: int = 0
    total_refunded: int = 0
    failures: list[str] = field(default_factory=list)


async def refund_installments(
    gateway: StripeGateway,
    booking_id: str,
    refund_amount_cents: int,
) -> InstallmentRefundResult:
    """
    Refund succeeded installments in order until ``refund_amount_cents`` is covered.

    A failing installment is logged and skipped.  Pending installments have
    their intent cancelled and are marked cancelled.
    """
    result = InstallmentRefundResult()
    remaining = refund_amount_cents

    for payment in await db.list_booking_payments(booking_id):
        if payment["status"] == "succeeded" and payment["stripe_payment_intent_id"]:
            if remaining <= 0:
                continue
            amount = min(remaining, payment["amount_cents"])
            try:
                intent = await gateway.retrieve_payment_intent(payment["stripe_payment_intent_id"])
                charge_id = _charge_id(intent.get("latest_charge"))
                if not charge_id:
                    logger.warning("Installment %s has no charge to refund", payment["id"])
                    continue
                await gateway.create_refund(charge=charge_id, amount_cents=amount)
            except Exception:
                logger.exception("Failed to refund installment %s of booking %s", payment["id"], booking_id)
                result.failures.append(payment["id"])
                continue

            await db.update_booking_payment(
                payment["id"],
                status="refunded",
                refund_amount_cents=amount,
                refunded_at=datetime.now(timezone.utc).isoformat(),
            )
            remaining -= amount
            result.total_refunded += amount
            result.refunds_processed += 1

        elif payment["status"] == "pending":
            if payment["stripe_payment_intent_id"]:
                try:
                    await gateway.cancel_payment_intent(payment["stripe_payment_intent_id"])
                except Exception:
                    logger.exception("Failed to cancel intent for installment %s", payment["id"])
            await db.update_booking_payment(payment["id"], status="cancelled")

    return result


def _charge_id(latest_charge: Any) -> str | None:
    if isinstance(latest_charge, str):
        return latest_charge
    if latest_charge:
        return latest_charge.get("id")
    return None


# ── Service ───────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CancellationService:
    def __init__(
        self,
        gateway: StripeGateway,
        notifier: BookingNotifier = default_notifier,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._notifier = notifier
        self._now = now

    async def hours_until_start(self, booking: Booking) -> float:
        court = await db.get_court(booking.court_id)
        tz_name = court["timezone"] if court else None
        now = self._now()
        if now.tzinfo is not None:
            now = now.astimezone(db.facility_zone(tz_name)).replace(tzinfo=None)
        starts_at = datetime.combine(
            booking.booking_date, datetime.strptime(db.normalize_time(booking.start_time), "%H:%M:%S").time()
        )
        return (starts_at - now).total_seconds() / 3600

    async def _check_permission(self, booking: Booking, actor_id: str, force: bool) -> None:
        is_owner = booking.player_id == actor_id
        role = await db.get_member_role(booking.organization_id, actor_id)
        is_org_admin = role in ORG_ADMIN_ROLES

        if not is_owner and not is_org_admin:
            raise PermissionDeniedError("You do not have permission to cancel this booking")
        if force and not is_org_admin:
            raise PermissionDeniedError("Only organization admins can force cancel bookings")

    async def cancel(
        self,
        booking_id: str,
        actor_id: str,
        reason: str | None = None,
        force: bool = False,
    ) -> CancellationResult:
        booking = await db.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)

        await self._check_permission(booking, actor_id, force)

        if booking.status == BookingStatus.cancelled:
            raise BookingValidationError("Booking is already cancelled")
        if booking.status == BookingStatus.completed:
            raise BookingValidationError("Cannot cancel a completed booking")
        transition(booking.status, BookingStatus.cancelled)

        if force:
            decision = RefundDecision(booking.price_cents, 100)
        else:
            policy = await db.get_cancellation_policy(booking.organization_id)
            decision = calculate_refund(booking.price_cents, await self.hours_until_start(booking), policy)

        payments = await db.list_booking_payments(booking.id)
        if payments:
            refund_amount, refund_status, message = await self._settle_installments(booking, decision)
        else:
            refund_amount = decision.amount_cents
            refund_status, message = await self._settle_single(booking, decision)

        updated = await db.update_booking(
            booking.id,
            status=BookingStatus.cancelled,
            cancelled_at=self._now().isoformat(),
            cancelled_by=actor_id,
            cancellation_reason=reason,
            refund_amount_cents=refund_amount,
            refund_status=refund_status,
        )
        if updated is None:
            raise BookingNotFoundError(booking.id)
        logger.info(
            "Booking %s cancelled by %s (refund %d cents, %s)",
            booking.id,
            actor_id,
            refund_amount,
            refund_status.value,
        )

        await self._notifier.booking_cancelled(updated, actor_id)

        return CancellationResult(
            booking=updated,
            refund_amount_cents=refund_amount,
            refund_status=refund_status,
            message=message or "Booking cancelled",
        )

    async def _settle_single(self, booking: Booking, decision: RefundDecision) -> tuple[RefundStatus, str | None]:
        if not booking.stripe_payment_intent_id:
            return RefundStatus.none, None

        try:
            intent = await self._gateway.retrieve_payment_intent(booking.stripe_payment_intent_id)
            intent_status = intent.get("status")

            if intent_status in UNCAPTURED_STATES:
                await self._gateway.cancel_payment_intent(booking.stripe_payment_intent_id)
                return RefundStatus.none, "Payment cancelled (not yet processed)"

            if intent_status == "succeeded" and decision.amount_cents > 0:
                charge_id = booking.stripe_charge_id or _charge_id(intent.get("latest_charge"))
                if not charge_id:
                    logger.warning("Booking %s: succeeded intent without a charge", booking.id)
                    return RefundStatus.none, None
                refund = await self._gateway.create_refund(charge=charge_id, amount_cents=decision.amount_cents)
                refunded = refund.get("amount", decision.amount_cents)
                currency = (intent.get("currency") or booking.currency).upper()
                status_ = RefundStatus.refunded if refunded == booking.price_cents else RefundStatus.partial
                return status_, f"Refunded {_fmt_percent(decision.percent)}% ({refunded / 100:.2f} {currency})"

            if intent_status == "succeeded":
                return RefundStatus.none, "No refund - cancelled outside refund window"

        except Exception:
            logger.exception("Error processing refund for booking %s", booking.id)
            return RefundStatus.failed, "Failed to process refund. Please contact support."

        return RefundStatus.none, None

    async def _settle_installments(
        self,
        booking: Booking,
        decision: RefundDecision,
    ) -> tuple[int, RefundStatus, str]:
        result = await refund_installments(self._gateway, booking.id, decision.amount_cents)
        if result.failures and result.total_refunded < decision.amount_cents:
            return result.total_refunded, RefundStatus.failed, "Failed to process refund. Please contact support."
        if result.total_refunded == 0:
            return 0, RefundStatus.none, "No refund - cancelled outside refund window"
        status_ = RefundStatus.refunded if result.total_refunded >= booking.price_cents else RefundStatus.partial
        return (
            result.total_refunded,
            status_,
            f"Refunded {result.total_refunded / 100:.2f} across {result.refunds_processed} installment(s)",
        )
