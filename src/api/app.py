"""
FastAPI application factory.

* Registers routes for loads, bids, trips, subscriptions, saved searches
  and admin.
* Maps domain errors to HTTP responses (see ``src.api.errors``).
* Starts / stops the bid-expiry sweeper via lifespan events when enabled,
  and drains pending notifications on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.errors import register_exception_handlers
from src.api.middleware import limiter
from src.api.routes import (
    admin,
    bids,
    load_templates,
    loads,
    saved_searches,
    subscriptions,
    trips,
)
from src.config import settings
from src.services import container
from src.workers import expiry_sweeper as _sweeper

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiry sweeper on startup (if enabled); stop on shutdown."""
    if settings.bid_expiry_sweep_enabled:
        await _sweeper.start_expiry_sweeper(container.bid_manager())
    yield
    if settings.bid_expiry_sweep_enabled:
        await _sweeper.stop_expiry_sweeper()
    await container.dispatcher.drain()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Freight Marketplace API",
        description=(
            "Cargo owners post loads, drivers bid on them, and the accepted "
            "bid becomes a tracked trip.  Enforces the load / bid / trip "
            "lifecycles, single-winner bid acceptance and subscription quotas."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # Routers
    app.include_router(loads.router, prefix="/api/v1")
    app.include_router(bids.router, prefix="/api/v1")
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(subscriptions.router, prefix="/api/v1")
    app.include_router(saved_searches.router, prefix="/api/v1")
    app.include_router(load_templates.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
