"""Pydantic models for the Court Booking Engine API and its internal records."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TIME_PATTERN = r"^\d{1,2}:\d{2}(:\d{2})?$"


# ── Enums ─────────────────────────────────────────────────────────────────


class BookingStatus(str, Enum):
    pending = "pending"
    awaiting_approval = "awaiting_approval"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


class RefundStatus(str, Enum):
    none = "none"
    pending = "pending"
    partial = "partial"
    refunded = "refunded"
    failed = "failed"


class BlockType(str, Enum):
    manual = "manual"
    maintenance = "maintenance"
    holiday = "holiday"
    weather = "weather"
    private_event = "private_event"


class BookingType(str, Enum):
    player = "player"
    guest = "guest"
    staff = "staff"


# ── Availability ──────────────────────────────────────────────────────────


class AvailabilitySlot(BaseModel):
    """One externally-sourced slot, normalized. Built per fetch, never stored."""

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Slot start")
    end: datetime | None = Field(None, description="Slot end, when the source gives one")
    court_count: int = Field(1, ge=1, description="Number of courts available at this time")
    external_resource_id: str | None = Field(None, description="Provider facility/court id")
    external_schedule_id: str | None = Field(None, description="Provider schedule id, needed for deep links")
    display_name: str | None = Field(None, description="Full court name including site")
    short_name: str | None = Field(None, description="Court name without site prefix")
    court_number: int | None = Field(None, description="Court number extracted from the name")
    price: float | None = Field(None, description="Price in major currency units")
    currency: str | None = Field(None, description="ISO currency code")
    action_link: str | None = Field(None, description="Deep link into the provider's booking page")


class ProviderConfig(BaseModel):
    id: str
    name: str | None = None
    provider_type: str = Field(..., description="Registry key, e.g. 'loisir_montreal'")
    base_url: str = Field(..., description="API base URL")
    api_config: dict[str, Any] = Field(default_factory=dict, description="Free-form adapter settings")
    link_template: str | None = Field(
        None,
        description="Booking link template with {facilityId} {startDateTime} {endDateTime} {facilityScheduleId}",
    )
    is_active: bool = True


class ProviderConfigUpdate(BaseModel):
    name: str | None = None
    base_url: str | None = None
    api_config: dict[str, Any] | None = None
    link_template: str | None = None
    is_active: bool | None = None


class FetchParams(BaseModel):
    dates: list[str] = Field(..., description="Dates to search (YYYY-MM-DD)")
    site_id: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    search_string: str | None = None
    limit: int | None = None
    offset: int | None = None


class CourtOption(BaseModel):
    external_resource_id: str | None = None
    external_schedule_id: str | None = None
    display_name: str | None = None
    short_name: str | None = None
    court_number: int | None = None
    action_link: str | None = None
    price: float | None = None


class GroupedSlot(BaseModel):
    start: datetime
    end: datetime | None = None
    court_count: int = Field(..., ge=1)
    court_options: list[CourtOption] = Field(default_factory=list)
    action_link: str | None = None
    price: float | None = None
    currency: str | None = None


class DateGroup(BaseModel):
    date_key: str = Field(..., description="YYYY-MM-DD")
    label: str = Field(..., description="'Today', 'Tomorrow' or e.g. 'Mon, Jan 6'")
    slots: list[GroupedSlot]


class AvailabilityResponse(BaseModel):
    provider_id: str
    total_count: int
    groups: list[DateGroup]


class OpenSlot(BaseModel):
    """A bookable interval produced from court slot templates."""

    start_time: str = Field(..., description="HH:MM:SS")
    end_time: str = Field(..., description="HH:MM:SS")
    price_cents: int = 0


# ── Bookings ──────────────────────────────────────────────────────────────


class CancellationPolicy(BaseModel):
    free_cancellation_hours: float = 24
    partial_refund_hours: float = 12
    partial_refund_percent: float = 50
    no_refund_hours: float = 0


DEFAULT_CANCELLATION_POLICY = CancellationPolicy()


class Booking(BaseModel):
    id: str
    organization_id: str
    court_id: str
    player_id: str | None = None
    booking_date: date
    start_time: str
    end_time: str
    status: BookingStatus
    booking_type: BookingType = BookingType.player
    price_cents: int = 0
    currency: str = "CAD"
    stripe_payment_intent_id: str | None = None
    stripe_charge_id: str | None = None
    requires_approval: bool = False
    notes: str | None = None
    guest_name: str | None = None
    refund_amount_cents: int | None = None
    refund_status: RefundStatus | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BookingCreate(BaseModel):
    court_id: str
    booking_date: date
    start_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM or HH:MM:SS")
    end_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM or HH:MM:SS")
    player_id: str | None = Field(None, description="Book on behalf of this player (staff only)")
    guest_name: str | None = Field(None, description="Guest booking without a player account (staff only)")
    skip_payment: bool | None = None
    notes: str | None = None


class BookingCreateResponse(BaseModel):
    booking: Booking
    client_secret: str | None = Field(None, description="PaymentIntent client secret when payment is required")


class BookingCancelRequest(BaseModel):
    reason: str | None = None
    force: bool = Field(False, description="Full refund regardless of policy (org admins only)")


class CancellationResult(BaseModel):
    booking: Booking
    refund_amount_cents: int
    refund_status: RefundStatus
    message: str


class StatusUpdateRequest(BaseModel):
    status: BookingStatus


class BookingListResponse(BaseModel):
    items: list[Booking]
    total: int
    limit: int
    offset: int


class PlayerBookingsPage(BaseModel):
    items: list[Booking]
    has_more: bool
    next_offset: int | None = None


# ── Blocks ────────────────────────────────────────────────────────────────


class AvailabilityBlock(BaseModel):
    id: str
    facility_id: str
    court_id: str | None = Field(None, description="None blocks every court of the facility")
    block_date: date
    start_time: str | None = Field(None, description="None (with end_time) means all day")
    end_time: str | None = None
    block_type: BlockType = BlockType.manual
    reason: str | None = None
    created_by: str | None = None


class BlockCreate(BaseModel):
    court_id: str | None = None
    block_date: date
    start_time: str | None = Field(None, pattern=TIME_PATTERN)
    end_time: str | None = Field(None, pattern=TIME_PATTERN)
    block_type: BlockType = BlockType.manual
    reason: str | None = None
    force: bool = Field(False, description="Create even when conflicts exist (org admins only)")


class ConflictCheckResponse(BaseModel):
    has_conflicts: bool
    overlapping_blocks: list[dict[str, Any]]
    conflicting_bookings: list[dict[str, Any]]


# ── Misc ──────────────────────────────────────────────────────────────────


class UserInfo(BaseModel):
    id: str = Field(..., description="User id (token subject)")
    issued_at: datetime | None = None


class HealthResponse(BaseModel):
    status: str = Field(..., description="'ok' or 'degraded'")
    version: str
    database: str = Field(..., description="'ok' or 'unavailable'")
    reminders_running: bool
    timestamp: datetime


class Error(BaseModel):
    """JSON body of every engine error response."""

    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable message")
    details: dict[str, Any] | None = None
