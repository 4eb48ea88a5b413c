"""Package store — loads packages and their hotels as pricing snapshots."""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.hotel import Hotel
from app.models.package import Package, PackageHotel
from app.services.pricing.errors import InvalidInput, NotFound
from app.services.pricing.types import HotelSnapshot, PackageSnapshot, StayPlan

logger = logging.getLogger(__name__)


# ---------- Assignment variants ----------


@dataclass(frozen=True)
class StructuredAssignment:
    """A ``package_hotels`` row."""
    hotel_id: str
    check_in_day: int
    check_out_day: int
    room_type: str = "Standard Room"
    rooms_needed: int = 1
    guests_per_room: int = 2
    price_per_night: Decimal | None = None
    taxes: Decimal | None = None
    service_fees: Decimal | None = None
    currency: str | None = None

    def to_stay(self) -> StayPlan:
        return StayPlan(
            hotel_id=self.hotel_id,
            check_in_day=self.check_in_day,
            nights=max(0, self.check_out_day - self.check_in_day),
            room_type=self.room_type or "Standard Room",
            rooms_needed=max(1, self.rooms_needed or 1),
            guests_per_room=max(1, self.guests_per_room or 2),
            price_per_night=self.price_per_night,
            taxes=self.taxes,
            service_fees=self.service_fees,
            currency=self.currency,
            source="structured",
        )


@dataclass(frozen=True)
class LegacyJsonAssignment:
    """An entry of the legacy ``hotel_packages_json`` blob."""
    hotel_id: str
    nights: int
    price_per_night: Decimal | None = None
    check_in_day: int = 1

    def to_stay(self) -> StayPlan:
        return StayPlan(
            hotel_id=self.hotel_id,
            check_in_day=self.check_in_day,
            nights=self.nights,
            price_per_night=self.price_per_night,
            source="legacy_json",
        )


HotelAssignment = StructuredAssignment | LegacyJsonAssignment


def _optional_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    return Decimal(str(value))


def parse_legacy_entry(raw: Any) -> LegacyJsonAssignment:
    """Parse one legacy JSON entry. Raises ValueError if unusable."""
    if not isinstance(raw, dict):
        raise ValueError("entry is not an object")
    hotel = raw.get("hotelId") or raw.get("hotel")
    if isinstance(hotel, dict):
        hotel = hotel.get("id") or hotel.get("_id")
    if not hotel:
        raise ValueError("missing hotelId")
    try:
        nights = int(raw.get("nights", 1))
        check_in_day = int(raw.get("checkInDay", 1))
        price = _optional_decimal(raw.get("pricePerNight"))
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ValueError(f"bad numeric field: {e}") from e
    if nights < 0 or check_in_day < 1:
        raise ValueError("nights must be >= 0 and checkInDay >= 1")
    return LegacyJsonAssignment(
        hotel_id=str(hotel),
        nights=nights,
        price_per_night=price,
        check_in_day=check_in_day,
    )


def normalize_assignments(
    structured: list[StructuredAssignment],
    legacy_json: list | None,
) -> tuple[tuple[StayPlan, ...], tuple[str, ...]]:
    """Collapse both stored shapes into StayPlans.

    Structured rows win when present; the legacy blob is only read for
    packages that were never migrated. Returns (stays, warnings).
    """
    if structured:
        stays = sorted((a.to_stay() for a in structured), key=lambda s: s.check_in_day)
        return tuple(stays), ()

    stays: list[StayPlan] = []
    warnings: list[str] = []
    for i, raw in enumerate(legacy_json or []):
        try:
            stays.append(parse_legacy_entry(raw).to_stay())
        except ValueError as e:
            logger.warning(f"Skipping legacy hotel entry {i}: {e}")
            warnings.append(f"Skipped malformed hotel entry {i}: {e}")
    stays.sort(key=lambda s: s.check_in_day)
    return tuple(stays), tuple(warnings)


# ---------- Store ----------


class PackageStore(ABC):
    @abstractmethod
    async def load_package(self, package_id: str) -> PackageSnapshot:
        """Raises NotFound if the package does not exist."""
        raise NotImplementedError


def _hotel_snapshot(hotel: Hotel) -> HotelSnapshot:
    return HotelSnapshot(
        id=str(hotel.id),
        name=hotel.name,
        base_price=hotel.base_price,
        currency=hotel.currency or settings.default_currency,
        tbo_hotel_code=hotel.tbo_hotel_code,
        tbo_linked=bool(hotel.tbo_linked),
        live_pricing=bool(hotel.live_pricing),
    )


def _structured(row: PackageHotel) -> StructuredAssignment:
    return StructuredAssignment(
        hotel_id=str(row.hotel_id),
        check_in_day=row.check_in_day,
        check_out_day=row.check_out_day,
        room_type=row.room_type,
        rooms_needed=row.rooms_needed,
        guests_per_room=row.guests_per_room,
        price_per_night=row.price_per_night,
        taxes=row.taxes,
        service_fees=row.service_fees,
        currency=row.currency,
    )


class SqlPackageStore(PackageStore):
    """Reads packages, assignments and hotels through one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_package(self, package_id: str) -> PackageSnapshot:
        try:
            pid = uuid.UUID(str(package_id))
        except ValueError:
            raise InvalidInput([f"packageId is not a valid id: {package_id}"])

        result = await self.db.execute(
            select(Package).where(Package.id == pid).options(selectinload(Package.hotel_assignments))
        )
        package = result.scalar_one_or_none()
        if package is None:
            raise NotFound("Package", str(package_id))

        stays, warnings = normalize_assignments(
            [_structured(row) for row in package.hotel_assignments],
            package.hotel_packages_json,
        )
        hotels = await self._load_hotels({s.hotel_id for s in stays})

        price_adult = package.price_adult if package.price_adult is not None else package.price
        return PackageSnapshot(
            id=str(package.id),
            title=package.title,
            duration=package.duration,
            price_adult=price_adult if price_adult is not None else Decimal("0"),
            price_child=package.price_child,
            price_infant=package.price_infant,
            currency=package.currency or settings.default_currency,
            discount_type=package.discount_type or "none",
            discount_value=package.discount_value or Decimal("0"),
            stays=stays,
            hotels=hotels,
            warnings=warnings,
        )

    async def _load_hotels(self, hotel_ids: set[str]) -> dict[str, HotelSnapshot]:
        ids = []
        for hid in hotel_ids:
            try:
                ids.append(uuid.UUID(hid))
            except ValueError:
                logger.warning(f"Ignoring non-UUID hotel id in package: {hid}")
        if not ids:
            return {}
        result = await self.db.execute(select(Hotel).where(Hotel.id.in_(ids)))
        return {str(h.id): _hotel_snapshot(h) for h in result.scalars().all()}
