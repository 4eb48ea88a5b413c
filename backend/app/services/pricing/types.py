"""Pricing value objects.

Everything here is immutable. Quotes and result sets round-trip through
plain dicts (``to_dict`` / ``from_dict``) so any cache backend can hold them;
breakdowns only serialize outward for API responses.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any


def _decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    if value in (None, ""):
        return default
    return Decimal(str(value))


# ---------- Request inputs ----------


@dataclass(frozen=True)
class TravelerCount:
    adults: int = 2
    children: int = 0
    infants: int = 0

    @property
    def total(self) -> int:
        return self.adults + self.children + self.infants

    def violations(self) -> list[str]:
        problems = []
        if self.adults < 1:
            problems.append("travelers.adults must be at least 1")
        if self.children < 0:
            problems.append("travelers.children cannot be negative")
        if self.infants < 0:
            problems.append("travelers.infants cannot be negative")
        return problems

    def to_dict(self) -> dict:
        return {"adults": self.adults, "children": self.children, "infants": self.infants}


@dataclass(frozen=True)
class DateRange:
    start_date: date
    end_date: date

    @property
    def nights(self) -> int:
        return (self.end_date - self.start_date).days

    def violations(self, today: date) -> list[str]:
        problems = []
        if self.start_date >= self.end_date:
            problems.append("dateRange.endDate must be after dateRange.startDate")
        if self.start_date < today:
            problems.append("dateRange.startDate cannot be in the past")
        return problems

    def day(self, offset: int) -> date:
        """Absolute date of a 1-based package day."""
        return self.start_date + timedelta(days=offset - 1)

    def to_dict(self) -> dict:
        return {"startDate": self.start_date.isoformat(), "endDate": self.end_date.isoformat()}


@dataclass(frozen=True)
class RoomOccupancy:
    adults: int
    children: int = 0
    children_ages: tuple[int, ...] = ()

    def to_tbo(self) -> dict:
        return {
            "Adults": self.adults,
            "Children": self.children,
            "ChildrenAges": list(self.children_ages) or None,
        }

    def cache_payload(self) -> list:
        return [self.adults, self.children, sorted(self.children_ages)]


# ---------- Provider quotes ----------


@dataclass(frozen=True)
class NightlyRate:
    date: date
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class RoomRate:
    room_type_code: str
    nightly_rates: tuple[NightlyRate, ...]
    total_amount: Decimal | None
    currency: str
    board_type: str = "Room Only"
    cancellation_policy: tuple[dict, ...] = ()
    is_refundable: bool = False
    booking_code: str = ""
    total_tax: Decimal = Decimal("0")
    service_tax: Decimal = Decimal("0")

    @property
    def effective_total(self) -> Decimal:
        """Provider total when given, else the sum of nightly rates."""
        if self.total_amount is not None:
            return self.total_amount
        return sum((n.amount for n in self.nightly_rates), Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "roomTypeCode": self.room_type_code,
            "nightlyRates": [
                {"date": n.date.isoformat(), "amount": str(n.amount), "currency": n.currency}
                for n in self.nightly_rates
            ],
            "totalAmount": str(self.total_amount) if self.total_amount is not None else None,
            "currency": self.currency,
            "boardType": self.board_type,
            "cancellationPolicy": list(self.cancellation_policy),
            "isRefundable": self.is_refundable,
            "bookingCode": self.booking_code,
            "totalTax": str(self.total_tax),
            "serviceTax": str(self.service_tax),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RoomRate":
        return cls(
            room_type_code=data["roomTypeCode"],
            nightly_rates=tuple(
                NightlyRate(
                    date=date.fromisoformat(n["date"]),
                    amount=Decimal(n["amount"]),
                    currency=n["currency"],
                )
                for n in data.get("nightlyRates", [])
            ),
            total_amount=_decimal(data.get("totalAmount")),
            currency=data["currency"],
            board_type=data.get("boardType", "Room Only"),
            cancellation_policy=tuple(data.get("cancellationPolicy", [])),
            is_refundable=bool(data.get("isRefundable", False)),
            booking_code=data.get("bookingCode", ""),
            total_tax=_decimal(data.get("totalTax"), Decimal("0")),
            service_tax=_decimal(data.get("serviceTax"), Decimal("0")),
        )


@dataclass(frozen=True)
class HotelRateQuote:
    hotel_code: str
    check_in: date
    check_out: date
    available: bool
    rooms: tuple[RoomRate, ...] = ()
    currency: str = "USD"
    hotel_id: str | None = None

    def cheapest_room(self) -> RoomRate | None:
        if not self.rooms:
            return None
        return min(self.rooms, key=lambda r: r.effective_total)

    def to_dict(self) -> dict:
        return {
            "hotelId": self.hotel_id,
            "hotelCode": self.hotel_code,
            "checkIn": self.check_in.isoformat(),
            "checkOut": self.check_out.isoformat(),
            "available": self.available,
            "currency": self.currency,
            "rooms": [r.to_dict() for r in self.rooms],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HotelRateQuote":
        return cls(
            hotel_code=data["hotelCode"],
            check_in=date.fromisoformat(data["checkIn"]),
            check_out=date.fromisoformat(data["checkOut"]),
            available=bool(data["available"]),
            rooms=tuple(RoomRate.from_dict(r) for r in data.get("rooms", [])),
            currency=data.get("currency", "USD"),
            hotel_id=data.get("hotelId"),
        )


@dataclass(frozen=True)
class SearchResultSet:
    check_in: date
    check_out: date
    hotels: tuple[HotelRateQuote, ...]
    searched_at: datetime

    def quote_for(self, hotel_code: str) -> HotelRateQuote | None:
        for quote in self.hotels:
            if quote.hotel_code == str(hotel_code):
                return quote
        return None

    def to_dict(self) -> dict:
        return {
            "checkIn": self.check_in.isoformat(),
            "checkOut": self.check_out.isoformat(),
            "hotels": [h.to_dict() for h in self.hotels],
            "searchedAt": self.searched_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchResultSet":
        return cls(
            check_in=date.fromisoformat(data["checkIn"]),
            check_out=date.fromisoformat(data["checkOut"]),
            hotels=tuple(HotelRateQuote.from_dict(h) for h in data.get("hotels", [])),
            searched_at=datetime.fromisoformat(data["searchedAt"]),
        )


@dataclass(frozen=True)
class RateQuote:
    """A prebook-validated rate, locked just before booking."""
    booking_code: str
    room: RoomRate
    total_amount: Decimal
    currency: str
    validated_at: datetime

    def to_dict(self) -> dict:
        return {
            "bookingCode": self.booking_code,
            "room": self.room.to_dict(),
            "totalAmount": float(self.total_amount),
            "currency": self.currency,
            "validatedAt": self.validated_at.isoformat(),
        }


@dataclass(frozen=True)
class GuestName:
    first_name: str
    last_name: str
    title: str = "Mr"
    guest_type: str = "Adult"


@dataclass(frozen=True)
class GuestDetails:
    rooms: tuple[tuple[GuestName, ...], ...]
    email: str
    phone: str

    def to_tbo(self) -> list[dict]:
        return [
            {
                "CustomerNames": [
                    {
                        "Title": g.title,
                        "FirstName": g.first_name,
                        "LastName": g.last_name,
                        "Type": g.guest_type,
                    }
                    for g in room
                ]
            }
            for room in self.rooms
        ]


@dataclass(frozen=True)
class BookingConfirmation:
    confirmation_number: str
    reference: str
    booking_code: str
    status: str
    total_fare: Decimal
    booked_at: datetime

    def to_dict(self) -> dict:
        return {
            "confirmationNumber": self.confirmation_number,
            "reference": self.reference,
            "bookingCode": self.booking_code,
            "status": self.status,
            "totalFare": float(self.total_fare),
            "bookedAt": self.booked_at.isoformat(),
        }


# ---------- Package snapshots ----------


@dataclass(frozen=True)
class HotelSnapshot:
    id: str
    name: str
    base_price: Decimal | None
    currency: str
    tbo_hotel_code: str | None = None
    tbo_linked: bool = False
    live_pricing: bool = False

    @property
    def is_live_priced(self) -> bool:
        return bool(self.tbo_linked and self.live_pricing and self.tbo_hotel_code)


@dataclass(frozen=True)
class StayPlan:
    """Canonical hotel stay within a package, whatever its stored shape."""
    hotel_id: str
    check_in_day: int
    nights: int
    room_type: str = "Standard Room"
    rooms_needed: int = 1
    guests_per_room: int = 2
    price_per_night: Decimal | None = None
    taxes: Decimal | None = None
    service_fees: Decimal | None = None
    currency: str | None = None  # of price_per_night, taxes and fees
    source: str = "structured"

    @property
    def check_out_day(self) -> int:
        return self.check_in_day + self.nights


@dataclass(frozen=True)
class PackageSnapshot:
    id: str
    title: str
    duration: int
    price_adult: Decimal
    price_child: Decimal | None
    price_infant: Decimal | None
    currency: str
    discount_type: str
    discount_value: Decimal
    stays: tuple[StayPlan, ...] = ()
    hotels: dict[str, HotelSnapshot] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()


# ---------- Breakdown ----------


@dataclass(frozen=True)
class TravelerLine:
    count: int
    unit_price: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {"count": self.count, "pricePerPerson": float(self.unit_price), "total": float(self.total)}


@dataclass(frozen=True)
class BasePortion:
    adults: TravelerLine
    children: TravelerLine
    infants: TravelerLine
    subtotal: Decimal

    def to_dict(self) -> dict:
        return {
            "adults": self.adults.to_dict(),
            "children": self.children.to_dict(),
            "infants": self.infants.to_dict(),
            "subtotal": float(self.subtotal),
        }


@dataclass(frozen=True)
class DiscountResult:
    type: str
    value: Decimal
    amount: Decimal
    final_subtotal: Decimal

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "value": float(self.value),
            "amount": float(self.amount),
            "finalSubtotal": float(self.final_subtotal),
        }


@dataclass(frozen=True)
class HotelPortionEntry:
    hotel_id: str
    nights: int
    total: Decimal
    currency: str
    hotel_name: str = ""
    source: str = "static"  # static | live
    rooms: int = 1
    check_in: date | None = None
    check_out: date | None = None

    @property
    def average_nightly(self) -> Decimal:
        if self.nights <= 0 or self.rooms <= 0:
            return Decimal("0")
        return (self.total / self.nights / self.rooms).quantize(Decimal("0.01"))

    def to_dict(self) -> dict:
        return {
            "hotelId": self.hotel_id,
            "hotelName": self.hotel_name,
            "nights": self.nights,
            "rooms": self.rooms,
            "total": float(self.total),
            "pricePerNight": float(self.average_nightly),
            "currency": self.currency,
            "livePricing": self.source == "live",
            "checkIn": self.check_in.isoformat() if self.check_in else None,
            "checkOut": self.check_out.isoformat() if self.check_out else None,
        }


@dataclass(frozen=True)
class TaxOrFee:
    label: str
    amount: Decimal
    currency: str
    hotel_id: str | None = None

    def to_dict(self) -> dict:
        return {"label": self.label, "amount": float(self.amount), "currency": self.currency, "hotelId": self.hotel_id}


@dataclass(frozen=True)
class PriceBreakdown:
    package_portion: BasePortion
    discount: DiscountResult
    hotel_portion: tuple[HotelPortionEntry, ...]
    taxes_and_fees: tuple[TaxOrFee, ...]
    grand_total: Decimal
    currency: str
    price_per_person: Decimal
    warnings: tuple[str, ...] = ()

    @property
    def hotel_total(self) -> Decimal:
        return sum((h.total for h in self.hotel_portion), Decimal("0"))

    def hotel_summary(self) -> dict:
        nights = sum(h.nights * h.rooms for h in self.hotel_portion)
        return {
            "totalHotels": len(self.hotel_portion),
            "totalCost": float(self.hotel_total),
            "averagePricePerNight": float((self.hotel_total / nights).quantize(Decimal("0.01"))) if nights else 0.0,
            "livePricingCount": sum(1 for h in self.hotel_portion if h.source == "live"),
            "staticPricingCount": sum(1 for h in self.hotel_portion if h.source == "static"),
        }

    def to_dict(self) -> dict:
        return {
            "packagePortion": self.package_portion.to_dict(),
            "discount": self.discount.to_dict(),
            "hotelPortion": [h.to_dict() for h in self.hotel_portion],
            "hotelSummary": self.hotel_summary(),
            "taxesAndFees": [t.to_dict() for t in self.taxes_and_fees],
            "grandTotal": float(self.grand_total),
            "currency": self.currency,
            "pricePerPerson": float(self.price_per_person),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class HotelPricingError:
    hotel_id: str
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"hotelId": self.hotel_id, "kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class PricingResult:
    package_id: str
    package_title: str
    travelers: TravelerCount
    date_range: DateRange | None
    breakdown: PriceBreakdown
    hotels: tuple[HotelRateQuote, ...] = ()
    errors: tuple[HotelPricingError, ...] = ()
    provider_status: str = "static"  # static | live | degraded | unavailable
    update_type: str = "detailed"

    def to_dict(self) -> dict:
        return {
            "packageId": self.package_id,
            "packageName": self.package_title,
            "travelers": self.travelers.to_dict(),
            "dateRange": self.date_range.to_dict() if self.date_range else None,
            "breakdown": self.breakdown.to_dict(),
            "hotels": [h.to_dict() for h in self.hotels],
            "errors": [e.to_dict() for e in self.errors],
            "providerStatus": self.provider_status,
            "updateType": self.update_type,
        }


@dataclass(frozen=True)
class ConfigurationResult:
    index: int
    travelers: TravelerCount
    result: PricingResult | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"configIndex": self.index, "travelers": self.travelers.to_dict()}
        if self.result is not None:
            data["pricing"] = {
                "total": float(self.result.breakdown.grand_total),
                "perPerson": float(self.result.breakdown.price_per_person),
                "currency": self.result.breakdown.currency,
            }
            data["breakdown"] = self.result.breakdown.to_dict()
            data["errors"] = [e.to_dict() for e in self.result.errors]
        else:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ComparisonResult:
    package_id: str
    configurations: tuple[ConfigurationResult, ...]
    best_index: int | None

    def to_dict(self) -> dict:
        return {
            "packageId": self.package_id,
            "comparisons": [c.to_dict() for c in self.configurations],
            "recommendedConfigIndex": self.best_index,
        }
