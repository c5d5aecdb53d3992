"""
Aggregate read endpoints.

- GET  /stats                 — Platform statistics
- GET  /portfolio/{address}   — One address's portfolio
- GET  /activity              — Recent-activity feed
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from invoice_ledger.api.deps import get_query_service
from invoice_ledger.schemas.stats import ActivityEntry, PlatformStats, Portfolio
from invoice_ledger.services.query_service import DEFAULT_ACTIVITY_LIMIT, QueryService

router = APIRouter()


@router.get("/stats", response_model=PlatformStats, summary="Platform statistics")
async def platform_stats(
    service: QueryService = Depends(get_query_service),
) -> PlatformStats:
    return await service.platform_stats()


@router.get(
    "/portfolio/{address}",
    response_model=Portfolio,
    summary="Portfolio of an address",
    description="Unknown addresses get a zero-state portfolio; nothing is registered.",
)
async def portfolio(
    address: str,
    service: QueryService = Depends(get_query_service),
) -> Portfolio:
    return await service.portfolio(address)


@router.get("/activity", response_model=List[ActivityEntry], summary="Recent activity")
async def recent_activity(
    limit: int = Query(DEFAULT_ACTIVITY_LIMIT, ge=1, le=100, description="Max entries"),
    service: QueryService = Depends(get_query_service),
) -> List[ActivityEntry]:
    return await service.recent_activity(limit=limit)
