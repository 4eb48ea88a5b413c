"""Cache-through access to live hotel rates.

Every search goes through the rate cache first. The cache is advisory: a
cache failure is logged and treated as a miss, so a pricing request never
fails because of it.
"""

import logging
from datetime import date

from app.config import settings
from app.services.pricing.config import pricing_config
from app.services.pricing.rate_cache import KEY_PREFIX_HOTEL, KEY_PREFIX_SEARCH, RateCache
from app.services.pricing.types import (
    HotelRateQuote,
    HotelSnapshot,
    RoomOccupancy,
    SearchResultSet,
    TravelerCount,
)
from app.services.tbo_client import ProviderError, ProviderErrorKind, TBOClient

logger = logging.getLogger(__name__)


def _spread(total: int, buckets: int) -> list[int]:
    share, extra = divmod(total, buckets)
    return [share + (1 if i < extra else 0) for i in range(buckets)]


def allocate_rooms(
    travelers: TravelerCount,
    guests_per_room: int | None = None,
    min_rooms: int = 1,
) -> list[RoomOccupancy]:
    """Split travelers into rooms, filling adults and children per room.

    When the stay reserves more rooms than the fill needs, travelers are
    spread over ``min_rooms`` rooms instead. Every such room keeps at least
    one adult, so the room count is capped at the number of adults.
    Infants share a room with adults and are not sent to the provider.
    """
    max_adults = max(1, guests_per_room or pricing_config.rooms.max_adults_per_room)
    max_children = pricing_config.rooms.max_children_per_room

    rooms: list[RoomOccupancy] = []
    adults, children = max(0, travelers.adults), max(0, travelers.children)
    while adults > 0 or children > 0:
        room_adults = min(max_adults, adults)
        room_children = min(max_children, children)
        rooms.append(RoomOccupancy(adults=room_adults, children=room_children))
        adults -= room_adults
        children -= room_children
    if not rooms:
        return [RoomOccupancy(adults=1)]

    target = min(max(1, min_rooms), max(1, travelers.adults))
    if len(rooms) >= target:
        return rooms
    return [
        RoomOccupancy(adults=a, children=c)
        for a, c in zip(_spread(travelers.adults, target), _spread(max(0, travelers.children), target))
    ]


class LiveRateService:
    """Fetches live hotel quotes through the rate cache."""

    def __init__(
        self,
        client: TBOClient,
        cache: RateCache,
        search_ttl: int | None = None,
        metadata_ttl: int | None = None,
    ):
        self.client = client
        self.cache = cache
        self.search_ttl = search_ttl or settings.search_cache_ttl
        self.metadata_ttl = metadata_ttl or settings.hotel_metadata_cache_ttl

    @staticmethod
    def search_params(
        hotel_codes: list[str],
        check_in: date,
        check_out: date,
        rooms: list[RoomOccupancy],
        nationality: str,
    ) -> dict:
        return {
            "checkIn": check_in,
            "checkOut": check_out,
            "hotelCodes": [str(c) for c in hotel_codes],
            "rooms": [r.cache_payload() for r in rooms],
            "nationality": nationality.upper(),
        }

    async def search(
        self,
        hotel_codes: list[str],
        check_in: date,
        check_out: date,
        rooms: list[RoomOccupancy],
        nationality: str | None = None,
    ) -> SearchResultSet:
        nationality = nationality or settings.tbo_guest_nationality
        key = self.cache.key(
            self.search_params(hotel_codes, check_in, check_out, rooms, nationality),
            KEY_PREFIX_SEARCH,
        )

        cached = await self._cache_get(key)
        if cached is not None:
            try:
                result = SearchResultSet.from_dict(cached.payload)
                logger.debug(f"Rate cache hit {key[-12:]} (hits={cached.hit_count})")
                return result
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable cache entry {key[-12:]}: {e}")

        logger.debug(f"Rate cache miss {key[-12:]}")
        result = await self.client.search(hotel_codes, check_in, check_out, rooms, nationality)
        await self._cache_put(key, result.to_dict(), self.search_ttl)
        return result

    async def get_quote(
        self,
        hotel: HotelSnapshot,
        check_in: date,
        check_out: date,
        rooms: list[RoomOccupancy],
        nationality: str | None = None,
    ) -> HotelRateQuote:
        """Live quote for one hotel. Raises ProviderError if it has none."""
        result = await self.search([hotel.tbo_hotel_code], check_in, check_out, rooms, nationality)
        quote = result.quote_for(hotel.tbo_hotel_code)
        if quote is None or not quote.available or quote.cheapest_room() is None:
            raise ProviderError(
                ProviderErrorKind.NO_AVAILABILITY,
                f"No live availability for {hotel.name} {check_in}..{check_out}",
            )
        return HotelRateQuote(
            hotel_code=quote.hotel_code,
            check_in=quote.check_in,
            check_out=quote.check_out,
            available=quote.available,
            rooms=quote.rooms,
            currency=quote.currency,
            hotel_id=hotel.id,
        )

    async def hotel_details(self, hotel_code: str) -> dict | None:
        key = self.cache.key({"hotelCode": hotel_code}, KEY_PREFIX_HOTEL)
        cached = await self._cache_get(key)
        if cached is not None:
            return cached.payload

        details = await self.client.hotel_details(hotel_code)
        if details is not None:
            await self._cache_put(key, details, self.metadata_ttl)
        return details

    async def _cache_get(self, key: str):
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Rate cache get failed, treating as miss: {e}")
            return None

    async def _cache_put(self, key: str, payload, ttl: int) -> None:
        try:
            await self.cache.put(key, payload, ttl)
        except Exception as e:
            logger.warning(f"Rate cache put failed: {e}")
