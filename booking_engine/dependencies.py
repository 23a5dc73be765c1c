import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Cookie, Depends, Header, HTTPException, Query, Request, status

from booking_engine.config import JWT_ALGORITHM, JWT_EXPIRY_DAYS, JWT_SECRET
from booking_engine.models import UserInfo
from booking_engine.services.availability.config_cache import ProviderConfigCache
from booking_engine.services.availability.service import AvailabilityService
from booking_engine.services.bookings.cancellation import CancellationService
from booking_engine.services.bookings.service import BookingService
from booking_engine.services.conflicts import BlockService
from booking_engine.services.payments import StripeGateway

logger = logging.getLogger(__name__)


# ── Pagination ─────────────────────────────────────────────────────────────


class PaginationParams:
    def __init__(
        self,
        limit: Annotated[int, Query(ge=1, le=200, description="Maximum items to return")] = 50,
        offset: Annotated[int, Query(ge=0, description="Items to skip")] = 0,
    ):
        self.limit = limit
        self.offset = offset


# ── JWT / Session ──────────────────────────────────────────────────────────


def create_jwt(user_id: str) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(days=JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_user(
    session: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> UserInfo:
    token = session or _bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please log in again.",
        ) from None
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session. Please log in again.",
        ) from None

    user_id: str | None = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload.",
        )

    return UserInfo(
        id=user_id,
        issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
    )


CurrentUser = Annotated[UserInfo, Depends(get_current_user)]


# ── Services (owned by the app lifespan) ───────────────────────────────────


def get_config_cache(request: Request) -> ProviderConfigCache:
    return request.app.state.config_cache


def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway


def get_availability_service(request: Request) -> AvailabilityService:
    return request.app.state.availability_service


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_cancellation_service(request: Request) -> CancellationService:
    return request.app.state.cancellation_service


def get_block_service(request: Request) -> BlockService:
    return request.app.state.block_service
