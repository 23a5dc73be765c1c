"""
Booking notifications.

Notifications are rows in the ``notification`` table; delivery (push,
email) is handled elsewhere.  Every public method here is fire-and-forget:
failures are logged and never propagate to the booking operation that
triggered them.
"""

from __future__ import annotations

import logging
from typing import Any

from booking_engine import db
from booking_engine.models import Booking

logger = logging.getLogger(__name__)

ORG_ADMIN_ROLES = ("owner", "admin")

FEEDBACK_REQUEST = "booking_feedback_request"
FEEDBACK_REMINDER = "booking_feedback_reminder"


def _booking_payload(booking: Booking, court: dict[str, Any] | None) -> dict[str, Any]:
    return {
        "booking_id": booking.id,
        "court_name": (court or {}).get("name") or "Court",
        "facility_name": (court or {}).get("facility_name") or "",
        "booking_date": booking.booking_date.isoformat(),
        "start_time": booking.start_time,
        "end_time": booking.end_time,
    }


def _where(payload: dict[str, Any]) -> str:
    facility = f" ({payload['facility_name']})" if payload["facility_name"] else ""
    return (
        f"{payload['court_name']}{facility} on {payload['booking_date']} "
        f"{payload['start_time']}-{payload['end_time']}"
    )


class BookingNotifier:
    async def booking_created(self, booking: Booking) -> None:
        try:
            court = await db.get_court(booking.court_id)
            payload = _booking_payload(booking, court)
            for admin_id in await db.list_member_ids(booking.organization_id, ORG_ADMIN_ROLES):
                await db.insert_notification(
                    admin_id,
                    "booking_created",
                    booking.id,
                    "New Booking",
                    f"New booking at {_where(payload)}",
                    payload,
                )
        except Exception:
            logger.exception("Failed to send booking-created notifications for %s", booking.id)

    async def booking_confirmed(self, booking: Booking) -> None:
        if not booking.player_id:
            return
        try:
            court = await db.get_court(booking.court_id)
            payload = _booking_payload(booking, court)
            await db.insert_notification(
                booking.player_id,
                "booking_confirmed",
                booking.id,
                "Booking Confirmed",
                f"Your booking at {_where(payload)} is confirmed",
                payload,
            )
        except Exception:
            logger.exception("Failed to send booking-confirmed notification for %s", booking.id)

    async def booking_cancelled(self, booking: Booking, cancelled_by: str) -> None:
        """Player cancellations notify org admins; org cancellations notify the player."""
        try:
            court = await db.get_court(booking.court_id)
            payload = _booking_payload(booking, court)
            if cancelled_by == booking.player_id:
                for admin_id in await db.list_member_ids(booking.organization_id, ORG_ADMIN_ROLES):
                    await db.insert_notification(
                        admin_id,
                        "booking_cancelled_by_player",
                        booking.id,
                        "Booking Cancelled",
                        f"A player cancelled their booking at {_where(payload)}",
                        payload,
                    )
            elif booking.player_id:
                await db.insert_notification(
                    booking.player_id,
                    "booking_cancelled_by_org",
                    booking.id,
                    "Booking Cancelled",
                    f"Your booking at {_where(payload)} has been cancelled",
                    payload,
                )
        except Exception:
            logger.exception("Failed to send cancellation notifications for %s", booking.id)

    async def feedback(self, booking: dict[str, Any], kind: str) -> bool:
        """Feedback request or reminder for a finished booking; False if already sent or failed."""
        if kind == FEEDBACK_REQUEST:
            title, body = "How Was Your Session?", "Rate your court and facility. Your feedback helps others!"
        else:
            title, body = "Don't Forget to Rate Your Session", "Your feedback window closes soon."
        try:
            return await db.insert_notification(
                booking["player_id"],
                kind,
                booking["id"],
                title,
                body,
                {"booking_id": booking["id"], "booking_date": booking["booking_date"]},
            )
        except Exception:
            logger.exception("Failed to send %s for booking %s", kind, booking["id"])
            return False


# ── Singleton instance ────────────────────────────────────────────────────
notifier = BookingNotifier()
