"""Hotel sync service — links local hotels to TBO inventory and keeps them in step.

Matching scores each TBO hotel in the local hotel's city on name similarity,
star rating, distance and address. Linking stores the TBO code that live
pricing searches with; syncing copies selected TBO facts onto the hotel and
records the outcome in ``sync_status``.
"""

import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.hotel import Hotel
from app.services.pricing.errors import InvalidInput, NotFound
from app.services.pricing.rate_cache import KEY_PREFIX_HOTEL, RateCache, utcnow
from app.services.tbo_client import ProviderError, TBOClient

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.5
MAX_MATCHES = 10
PROXIMITY_RANGE_KM = 50.0
EARTH_RADIUS_KM = 6371.0

DEFAULT_SYNC_FIELDS = ("description", "amenities", "starRating")
SYNCABLE_FIELDS = frozenset({"description", "amenities", "starRating", "coordinates"})

# Cities whose TBO inventory is split across district "cities"
CITY_ALIASES: dict[str, tuple[str, ...]] = {
    "phuket": (
        "phuket", "mai khao", "patong", "kata", "karon", "rawai", "kamala", "surin",
        "bang tao", "nai harn", "chalong", "thalang", "cherng talay", "cape panwa", "cape yamu",
    ),
    "london": (
        "london", "westminster", "kensington", "chelsea", "camden", "tower hamlets", "southwark",
        "lambeth", "wandsworth", "hammersmith", "fulham", "islington", "hackney", "greenwich", "lewisham",
    ),
}

_STAR_WORDS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5}


# ---------- Scoring helpers ----------


def levenshtein_distance(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """1.0 for identical strings, falling with edit distance."""
    a, b = a.lower(), b.lower()
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def parse_star_rating(value) -> int | None:
    """TBO sends ``4``, ``"4"`` or ``"FourStar"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) or None
    text = str(value).strip().lower()
    if text.isdigit():
        return int(text) or None
    for word, stars in _STAR_WORDS.items():
        if text.startswith(word):
            return stars
    return None


def _coordinates(raw: dict) -> tuple[float, float] | None:
    geo = raw.get("GeoLocation")
    if isinstance(geo, dict):
        lat, lon = geo.get("Latitude"), geo.get("Longitude")
    elif raw.get("Map"):
        lat, _, lon = str(raw["Map"]).partition("|")
    else:
        lat, lon = raw.get("Latitude"), raw.get("Longitude")
    try:
        return float(lat), float(lon)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class HotelProfile:
    """The local facts a TBO hotel is matched against."""
    name: str
    star_rating: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None

    @classmethod
    def from_model(cls, hotel: Hotel) -> "HotelProfile":
        return cls(
            name=hotel.name,
            star_rating=hotel.star_rating,
            latitude=hotel.latitude,
            longitude=hotel.longitude,
            address=hotel.address,
        )

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


@dataclass(frozen=True)
class TBOHotelCandidate:
    tbo_hotel_code: str
    name: str
    city_code: str | None = None
    country_code: str | None = None
    star_rating: int | None = None
    address: str | None = None
    description: str | None = None
    coordinates: tuple[float, float] | None = None
    amenities: tuple[str, ...] = ()
    images: tuple[str, ...] = ()
    match_score: float | None = None

    @classmethod
    def from_tbo(cls, raw: dict) -> "TBOHotelCandidate":
        return cls(
            tbo_hotel_code=str(raw["HotelCode"]),
            name=str(raw.get("HotelName") or ""),
            city_code=str(raw["CityId"]) if raw.get("CityId") is not None else raw.get("CityCode"),
            country_code=raw.get("CountryCode"),
            star_rating=parse_star_rating(raw.get("StarRating", raw.get("HotelRating"))),
            address=raw.get("Address"),
            description=raw.get("Description"),
            coordinates=_coordinates(raw),
            amenities=tuple(str(a) for a in raw.get("Amenities") or raw.get("HotelFacilities") or []),
            images=tuple(str(i) for i in raw.get("Images") or []),
        )

    def to_dict(self) -> dict:
        return {
            "tboHotelCode": self.tbo_hotel_code,
            "name": self.name,
            "cityCode": self.city_code,
            "countryCode": self.country_code,
            "starRating": self.star_rating,
            "address": self.address,
            "description": self.description,
            "coordinates": (
                {"latitude": self.coordinates[0], "longitude": self.coordinates[1]} if self.coordinates else None
            ),
            "amenities": list(self.amenities),
            "images": list(self.images),
            "matchScore": round(self.match_score, 4) if self.match_score is not None else None,
        }


def calculate_match_score(local: HotelProfile, candidate: TBOHotelCandidate) -> float:
    """Weighted 0-1 score. Distance and address count only when both sides have them."""
    score = string_similarity(local.name, candidate.name) * 0.4
    weight = 0.4

    if local.star_rating is not None and candidate.star_rating is not None:
        gap = abs(local.star_rating - candidate.star_rating)
        score += 0.2 if gap == 0 else 0.1 if gap <= 1 else 0.0
    weight += 0.2

    if local.coordinates and candidate.coordinates:
        distance = haversine_km(*local.coordinates, *candidate.coordinates)
        score += max(0.0, (PROXIMITY_RANGE_KM - distance) / PROXIMITY_RANGE_KM) * 0.3
        weight += 0.3

    if local.address and candidate.address:
        score += string_similarity(local.address, candidate.address) * 0.1
        weight += 0.1

    return score / weight


def match_cities(city_name: str, cities: list[dict]) -> list[dict]:
    """TBO cities for a local city name: aliases, then exact, then containment."""
    wanted = city_name.strip().lower()
    for alias, districts in CITY_ALIASES.items():
        if alias in wanted:
            matched = [c for c in cities if any(d in c["Name"].lower() for d in districts)]
            if matched:
                return matched

    exact = [c for c in cities if c["Name"].lower() == wanted]
    if exact:
        return exact[:1]
    return [c for c in cities if wanted in c["Name"].lower() or c["Name"].lower() in wanted]


@dataclass
class SyncResult:
    hotel_id: str
    synced_fields: list[str] = field(default_factory=list)
    updated_count: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "hotelId": self.hotel_id,
            "syncedFields": self.synced_fields,
            "updatedCount": self.updated_count,
        }


# ---------- Service ----------


class HotelSyncService:
    def __init__(
        self,
        client: TBOClient,
        cache: RateCache | None = None,
        metadata_ttl: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.cache = cache
        self.metadata_ttl = metadata_ttl or settings.hotel_metadata_cache_ttl
        self.clock = clock

    async def search_hotels_by_city(self, city_name: str, country_code: str = "AE") -> list[TBOHotelCandidate]:
        if not city_name or not city_name.strip():
            raise InvalidInput(["city is required"])

        cities = await self.client.city_list(country_code)
        matched = match_cities(city_name, cities)
        if not matched:
            sample = ", ".join(c["Name"] for c in cities[:10])
            raise NotFound("TBO city", f"{city_name} ({country_code}); available: {sample}")

        candidates: list[TBOHotelCandidate] = []
        for city in matched:
            try:
                hotels = await self.client.hotels_by_city(city["Code"])
            except ProviderError as e:
                logger.warning(f"TBO hotel list failed for {city['Name']}: {e.message}")
                continue
            candidates.extend(TBOHotelCandidate.from_tbo(h) for h in hotels)

        logger.info(f"TBO hotels for {city_name}: {len(candidates)} across {len(matched)} cities")
        return candidates

    async def find_matches(self, db: AsyncSession, hotel_id: str) -> list[TBOHotelCandidate]:
        """Best TBO candidates for a local hotel, strongest first."""
        hotel = await self._load_hotel(db, hotel_id)
        if not hotel.city:
            raise InvalidInput([f"hotel {hotel_id} has no city to search"])

        profile = HotelProfile.from_model(hotel)
        candidates = await self.search_hotels_by_city(hotel.city, hotel.tbo_country_code or "AE")
        scored = [replace(c, match_score=calculate_match_score(profile, c)) for c in candidates]
        matches = sorted(
            (c for c in scored if c.match_score > MATCH_THRESHOLD), key=lambda c: c.match_score, reverse=True
        )
        return matches[:MAX_MATCHES]

    async def link_hotel(self, db: AsyncSession, hotel_id: str, candidate: TBOHotelCandidate) -> Hotel:
        hotel = await self._load_hotel(db, hotel_id)
        hotel.tbo_hotel_code = candidate.tbo_hotel_code
        hotel.tbo_hotel_name = candidate.name
        hotel.tbo_city_code = candidate.city_code
        hotel.tbo_country_code = candidate.country_code
        hotel.tbo_linked = True
        hotel.sync_status = "pending"
        hotel.last_sync_at = self.clock()
        await db.commit()

        await self.cache_tbo_hotel(candidate)
        logger.info(f"Hotel {hotel.name} linked to TBO hotel {candidate.tbo_hotel_code}")
        return hotel

    async def unlink_hotel(self, db: AsyncSession, hotel_id: str) -> Hotel:
        hotel = await self._load_hotel(db, hotel_id)
        hotel.tbo_linked = False
        hotel.live_pricing = False
        hotel.sync_status = "not_linked"
        hotel.last_sync_error = None
        await db.commit()
        logger.info(f"Hotel {hotel.name} unlinked from TBO")
        return hotel

    async def sync_hotel_data(
        self, db: AsyncSession, hotel_id: str, fields: list[str] | None = None
    ) -> SyncResult:
        """Copy TBO facts onto a linked hotel. A provider failure marks the sync failed."""
        hotel = await self._load_hotel(db, hotel_id)
        if not hotel.tbo_linked or not hotel.tbo_hotel_code:
            raise InvalidInput([f"hotel {hotel_id} is not linked to TBO"])
        wanted = set(fields or DEFAULT_SYNC_FIELDS)
        unknown = sorted(wanted - SYNCABLE_FIELDS)
        if unknown:
            raise InvalidInput([f"cannot sync field: {name}" for name in unknown])

        try:
            details = await self.client.hotel_details(hotel.tbo_hotel_code)
        except ProviderError as e:
            hotel.sync_status = "failed"
            hotel.last_sync_error = e.message
            hotel.last_sync_at = self.clock()
            await db.commit()
            logger.warning(f"Sync failed for hotel {hotel_id}: {e.message}")
            raise

        synced: list[str] = []
        if details:
            if "description" in wanted and details.get("Description"):
                hotel.description = details["Description"]
                synced.append("description")
            stars = parse_star_rating(details.get("StarRating", details.get("HotelRating")))
            if "starRating" in wanted and stars:
                hotel.star_rating = stars
                synced.append("starRating")
            amenities = details.get("Amenities") or details.get("HotelFacilities")
            if "amenities" in wanted and amenities:
                hotel.amenities = [str(a) for a in amenities]
                synced.append("amenities")
            coordinates = _coordinates(details)
            if "coordinates" in wanted and coordinates:
                hotel.latitude, hotel.longitude = coordinates
                synced.append("coordinates")

        hotel.sync_status = "synced"
        hotel.last_sync_error = None
        hotel.last_sync_at = self.clock()
        if synced:
            hotel.synced_fields = synced
        await db.commit()

        logger.info(f"Synced hotel {hotel_id}: {', '.join(synced) or 'nothing new'}")
        return SyncResult(hotel_id=str(hotel.id), synced_fields=synced, updated_count=len(synced))

    async def cache_tbo_hotel(self, candidate: TBOHotelCandidate) -> None:
        if self.cache is None:
            return
        key = self.cache.key({"hotelCode": candidate.tbo_hotel_code, "view": "listing"}, KEY_PREFIX_HOTEL)
        try:
            await self.cache.put(key, candidate.to_dict(), self.metadata_ttl)
        except Exception as e:
            logger.warning(f"Caching TBO hotel {candidate.tbo_hotel_code} failed: {e}")

    async def _load_hotel(self, db: AsyncSession, hotel_id: str) -> Hotel:
        try:
            hid = uuid.UUID(str(hotel_id))
        except ValueError:
            raise InvalidInput([f"hotelId is not a valid id: {hotel_id}"])
        hotel = await db.get(Hotel, hid)
        if hotel is None:
            raise NotFound("Hotel", str(hotel_id))
        return hotel
