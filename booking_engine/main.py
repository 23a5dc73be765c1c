"""
FastAPI application entry point.

Mounts the API routers and owns the lifespan of the shared services:
the SQLite connection, the Stripe gateway, the provider config cache and
the background reminder sweep.
"""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from booking_engine import db
from booking_engine.config import REMINDERS_ENABLED
from booking_engine.errors import register_exception_handlers
from booking_engine.rate_limit import limiter
from booking_engine.routers import availability, blocks, bookings, health, payments, providers
from booking_engine.services.availability.config_cache import ProviderConfigCache
from booking_engine.services.availability.service import AvailabilityService
from booking_engine.services.bookings.cancellation import CancellationService
from booking_engine.services.bookings.service import BookingService
from booking_engine.services.conflicts import BlockService
from booking_engine.services.payments import StripeGateway
from booking_engine.services.reminders import ReminderSweeper

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)

reminder_sweeper = ReminderSweeper()


def build_gateway() -> StripeGateway:
    return StripeGateway()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await db.init_db()

    gateway = build_gateway()
    config_cache = ProviderConfigCache()
    app.state.gateway = gateway
    app.state.config_cache = config_cache
    app.state.availability_service = AvailabilityService(config_cache)
    app.state.booking_service = BookingService(gateway)
    app.state.cancellation_service = CancellationService(gateway)
    app.state.block_service = BlockService()
    app.state.reminder_sweeper = reminder_sweeper

    if REMINDERS_ENABLED:
        await reminder_sweeper.start()
    logger.info("Booking engine ready")

    yield

    await reminder_sweeper.stop()
    await db.close_db()


app = FastAPI(
    title="Court Booking Engine",
    version="0.1.0",
    description="Court availability aggregation and booking lifecycle API.",
    lifespan=lifespan,
)

# ── Rate limiting ─────────────────────────────────────────────────────────

app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )


register_exception_handlers(app)

# ── Routers ───────────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(providers.router)
app.include_router(availability.router)
app.include_router(bookings.router)
app.include_router(blocks.router)
app.include_router(payments.router)


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run(
        "booking_engine.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=os.getenv("API_RELOAD", "false").lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    run()
