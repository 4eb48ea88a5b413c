"""Pricing engine configuration — single source for engine constants."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from app.config import settings


@dataclass(frozen=True)
class RoomAllocation:
    """How travelers are split into rooms for provider searches."""
    max_adults_per_room: int = 2
    max_children_per_room: int = 2


@dataclass(frozen=True)
class FareDefaults:
    """Fallbacks for packages with incomplete per-traveler pricing."""
    child_share_of_adult: Decimal = Decimal("0.70")
    infant_price: Decimal = Decimal("0")
    money_quantum: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class DiscountTypes:
    supported: tuple[str, ...] = ("none", "percentage", "fixed_amount")
    aliases: dict[str, str] = field(default_factory=lambda: {"fixed": "fixed_amount"})


@dataclass(frozen=True)
class PricingConfig:
    rooms: RoomAllocation = field(default_factory=RoomAllocation)
    fares: FareDefaults = field(default_factory=FareDefaults)
    discounts: DiscountTypes = field(default_factory=DiscountTypes)
    # Provider totals within this tolerance are treated as unchanged at prebook
    rate_change_tolerance: Decimal = Decimal("0.01")


pricing_config = PricingConfig()


def pricing_today() -> date:
    """Today's date where bookings are sold, for past-date checks."""
    return datetime.now(ZoneInfo(settings.pricing_timezone)).date()
