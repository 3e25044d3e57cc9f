"""
FastAPI application factory.

* Registers routes for shops, delivery settings, orders and admin.
* Owns the shop-search circuit breaker (``app.state``) and closes the
  Redis pool via lifespan events.
* Maps pricing-domain errors onto HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, delivery, orders, shops
from src.config import settings
from src.domain.breaker import CircuitBreaker
from src.domain.entities import (
    ConfigurationError,
    InvalidInputError,
    InvalidStateTransition,
)
from src.infrastructure.redis_client import close_redis

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the shared Redis pool on shutdown."""
    yield
    await close_redis()


async def _configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.warning("Delivery configuration rejected: %s", exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def _invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def _invalid_transition_handler(request: Request, exc: InvalidStateTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Hyperlocal Delivery Pricing API",
        description=(
            "Prices deliveries for neighbourhood shops from merchant-defined "
            "distance tiers, order-value rules and free-delivery offers, and "
            "places orders with persisted totals."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Per-app so each instance (and each test client) starts closed
    app.state.shop_search_breaker = CircuitBreaker(
        failure_threshold=settings.shop_search_failure_threshold,
        cooldown_seconds=settings.shop_search_cooldown_seconds,
    )

    # Domain errors
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.add_exception_handler(InvalidInputError, _invalid_input_handler)
    app.add_exception_handler(InvalidStateTransition, _invalid_transition_handler)

    # Routers
    app.include_router(shops.router, prefix="/api/v1")
    app.include_router(delivery.router, prefix="/api/v1")
    app.include_router(orders.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
