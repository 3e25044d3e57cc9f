"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health         -- simple health check
GET /api/v1/admin/shop-search    -- state of the shop-search circuit breaker
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from src.api.dependencies import get_shop_search_breaker
from src.api.middleware import limiter
from src.api.schemas import HealthResponse
from src.domain.breaker import CircuitBreaker

router = APIRouter(prefix="/admin", tags=["admin"])


class BreakerStatusResponse(BaseModel):
    open: bool
    failure_count: int
    failure_threshold: int
    cooldown_seconds: float


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get(
    "/shop-search",
    response_model=BreakerStatusResponse,
    summary="Shop-search circuit breaker state",
)
@limiter.limit("100/minute")
async def shop_search_status(
    request: Request,
    breaker: CircuitBreaker = Depends(get_shop_search_breaker),
):
    return BreakerStatusResponse(
        open=breaker.is_open,
        failure_count=breaker.failure_count,
        failure_threshold=breaker.failure_threshold,
        cooldown_seconds=breaker.cooldown_seconds,
    )
