from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.pricing.live_rates import LiveRateService
from app.services.pricing.orchestrator import PricingOrchestrator
from app.services.pricing.package_store import SqlPackageStore
from app.services.hotel_sync import HotelSyncService
from app.services.pricing.rate_cache import RateCache
from app.services.tbo_client import TBOClient


def get_rate_cache(request: Request) -> RateCache:
    return request.app.state.rate_cache


def get_tbo_client(request: Request) -> TBOClient:
    return request.app.state.tbo_client


async def get_pricing_orchestrator(
    db: AsyncSession = Depends(get_db),
    cache: RateCache = Depends(get_rate_cache),
    client: TBOClient = Depends(get_tbo_client),
) -> PricingOrchestrator:
    """Per-request orchestrator over the shared cache and provider client."""
    return PricingOrchestrator(
        store=SqlPackageStore(db),
        live_rates=LiveRateService(client, cache),
    )


def get_hotel_sync_service(
    cache: RateCache = Depends(get_rate_cache),
    client: TBOClient = Depends(get_tbo_client),
) -> HotelSyncService:
    return HotelSyncService(client, cache)
