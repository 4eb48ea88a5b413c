"""TBO hotel admin router — find, link and sync TBO counterparts of local hotels."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_hotel_sync_service
from app.models.hotel import Hotel
from app.routers.errors import http_error
from app.schemas.hotel_sync import LinkHotelRequest, SyncHotelRequest
from app.services.hotel_sync import HotelSyncService
from app.services.pricing.errors import PricingError
from app.services.tbo_client import ProviderError

router = APIRouter()


def _link_state(hotel: Hotel) -> dict:
    return {
        "hotelId": str(hotel.id),
        "name": hotel.name,
        "tboHotelCode": hotel.tbo_hotel_code,
        "tboHotelName": hotel.tbo_hotel_name,
        "isLinked": bool(hotel.tbo_linked),
        "livePricing": bool(hotel.live_pricing),
        "syncStatus": hotel.sync_status,
        "lastSyncAt": hotel.last_sync_at.isoformat() if hotel.last_sync_at else None,
    }


@router.get("/search")
async def search_tbo_hotels(
    city: str = Query(..., min_length=1),
    country_code: str = Query("AE", alias="countryCode", min_length=2, max_length=2),
    service: HotelSyncService = Depends(get_hotel_sync_service),
):
    try:
        hotels = await service.search_hotels_by_city(city, country_code)
    except (PricingError, ProviderError) as e:
        raise http_error(e)
    return {"city": city, "countryCode": country_code.upper(), "count": len(hotels), "hotels": [h.to_dict() for h in hotels]}


@router.get("/matches/{hotel_id}")
async def find_tbo_matches(
    hotel_id: str,
    db: AsyncSession = Depends(get_db),
    service: HotelSyncService = Depends(get_hotel_sync_service),
):
    """Scored TBO candidates for a local hotel."""
    try:
        matches = await service.find_matches(db, hotel_id)
    except (PricingError, ProviderError) as e:
        raise http_error(e)
    return {"hotelId": hotel_id, "matches": [m.to_dict() for m in matches]}


@router.post("/link")
async def link_hotel(
    req: LinkHotelRequest,
    db: AsyncSession = Depends(get_db),
    service: HotelSyncService = Depends(get_hotel_sync_service),
):
    try:
        hotel = await service.link_hotel(db, req.hotel_id, req.to_candidate())
    except PricingError as e:
        raise http_error(e)
    return _link_state(hotel)


@router.delete("/link/{hotel_id}")
async def unlink_hotel(
    hotel_id: str,
    db: AsyncSession = Depends(get_db),
    service: HotelSyncService = Depends(get_hotel_sync_service),
):
    try:
        hotel = await service.unlink_hotel(db, hotel_id)
    except PricingError as e:
        raise http_error(e)
    return _link_state(hotel)


@router.post("/sync/{hotel_id}")
async def sync_hotel(
    hotel_id: str,
    req: SyncHotelRequest,
    db: AsyncSession = Depends(get_db),
    service: HotelSyncService = Depends(get_hotel_sync_service),
):
    try:
        result = await service.sync_hotel_data(db, hotel_id, req.fields_to_sync or None)
    except (PricingError, ProviderError) as e:
        raise http_error(e)
    return result.to_dict()
