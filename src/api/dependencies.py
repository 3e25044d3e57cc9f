"""FastAPI dependency injection helpers."""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.breaker import CircuitBreaker
from src.domain.pricing import DeliveryPricingEngine
from src.infrastructure.database import async_session_factory
from src.infrastructure.redis_client import get_config_cache  # noqa: F401


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_pricing_engine() -> DeliveryPricingEngine:
    return DeliveryPricingEngine(currency=settings.currency_label)


def get_shop_search_breaker(request: Request) -> CircuitBreaker:
    """The breaker belongs to the app instance, see ``create_app``."""
    return request.app.state.shop_search_breaker
