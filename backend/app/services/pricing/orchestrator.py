"""Pricing orchestrator — public entry points of the pricing engine.

Per request: load package → validate → resolve each hotel stay (live quote
or static rate, concurrently) → compose. A provider failure for one hotel
is recorded in ``errors`` and that hotel falls back to its static rate;
only a missing package or invalid input fails the whole call.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from app.config import settings
from app.services.pricing.calculator import PackagePriceCalculator, ResolvedStay, price_calculator
from app.services.pricing.config import pricing_today
from app.services.pricing.errors import InvalidInput, NotFound, PricingError
from app.services.pricing.live_rates import LiveRateService, allocate_rooms
from app.services.pricing.package_store import PackageStore
from app.services.pricing.types import (
    BookingConfirmation,
    ComparisonResult,
    ConfigurationResult,
    DateRange,
    GuestDetails,
    HotelPricingError,
    HotelRateQuote,
    HotelSnapshot,
    PackageSnapshot,
    PricingResult,
    RateQuote,
    StayPlan,
    TravelerCount,
)
from app.services.tbo_client import ProviderError

logger = logging.getLogger(__name__)


class PricingOrchestrator:
    """Prices packages for a traveler mix and optional travel dates."""

    def __init__(
        self,
        store: PackageStore,
        live_rates: LiveRateService | None,
        calculator: PackagePriceCalculator = price_calculator,
        today: Callable[[], date] = pricing_today,
        max_configurations: int | None = None,
    ):
        self.store = store
        self.live_rates = live_rates
        self.calculator = calculator
        self.today = today
        self.max_configurations = max_configurations or settings.max_compare_configurations

    # ---------- Entry points ----------

    async def calculate_detailed_pricing(
        self,
        package_id: str,
        travelers: TravelerCount,
        date_range: DateRange | None = None,
        currency: str | None = None,
    ) -> PricingResult:
        package = await self.store.load_package(package_id)
        self._validate(travelers, date_range)
        return await self._price(package, travelers, date_range, currency, live=True)

    async def get_quick_estimate(
        self,
        package_id: str,
        travelers: TravelerCount,
        currency: str | None = None,
    ) -> PricingResult:
        """Static rates only; never calls the hotel provider."""
        package = await self.store.load_package(package_id)
        self._validate(travelers, None)
        return await self._price(package, travelers, None, currency, live=False, update_type="estimate")

    async def update_travelers(
        self,
        package_id: str,
        travelers: TravelerCount,
        include_hotels: bool = False,
        date_range: DateRange | None = None,
        currency: str | None = None,
    ) -> PricingResult:
        if include_hotels and date_range is not None:
            result = await self.calculate_detailed_pricing(package_id, travelers, date_range, currency)
            return replace(result, update_type="travelers")
        return await self.get_quick_estimate(package_id, travelers, currency)

    async def update_dates(
        self,
        package_id: str,
        date_range: DateRange | None,
        travelers: TravelerCount,
        currency: str | None = None,
    ) -> PricingResult:
        if date_range is None:
            raise InvalidInput(["dateRange is required"])
        result = await self.calculate_detailed_pricing(package_id, travelers, date_range, currency)
        return replace(result, update_type="dates")

    async def hotel_pricing(
        self,
        package_id: str,
        date_range: DateRange | None,
        travelers: TravelerCount,
    ) -> PricingResult:
        """Full pipeline; callers use only the hotel part of the result."""
        if date_range is None:
            raise InvalidInput(["dateRange is required"])
        result = await self.calculate_detailed_pricing(package_id, travelers, date_range)
        return replace(result, update_type="hotels")

    async def compare_configurations(
        self,
        package_id: str,
        configurations: list[TravelerCount],
        date_range: DateRange | None = None,
        currency: str | None = None,
    ) -> ComparisonResult:
        if not configurations:
            raise InvalidInput(["configurations must contain at least one entry"])
        if len(configurations) > self.max_configurations:
            raise InvalidInput([f"configurations allows a maximum {self.max_configurations} entries"])

        package = await self.store.load_package(package_id)
        if date_range is not None:
            violations = date_range.violations(self.today())
            if violations:
                raise InvalidInput(violations)

        async def run(index: int, travelers: TravelerCount) -> ConfigurationResult:
            try:
                self._validate(travelers, None)
                result = await self._price(
                    package, travelers, date_range, currency,
                    live=date_range is not None, update_type="compare",
                )
                return ConfigurationResult(index=index, travelers=travelers, result=result)
            except PricingError as e:
                logger.info(f"Configuration {index} of package {package.id} not priced: {e}")
                return ConfigurationResult(index=index, travelers=travelers, error=str(e))

        results = await asyncio.gather(*(run(i, t) for i, t in enumerate(configurations)))

        competitive = [r for r in results if r.result is not None]
        best = min(competitive, key=lambda r: r.result.breakdown.price_per_person, default=None)
        return ComparisonResult(
            package_id=package.id,
            configurations=tuple(results),
            best_index=best.index if best else None,
        )

    # ---------- Booking ----------

    async def _bookable_hotel(self, package_id: str, hotel_id: str) -> HotelSnapshot:
        package = await self.store.load_package(package_id)
        if not any(stay.hotel_id == hotel_id for stay in package.stays) or hotel_id not in package.hotels:
            raise NotFound("Hotel in package", hotel_id)
        hotel = package.hotels[hotel_id]
        if not hotel.is_live_priced or self.live_rates is None:
            raise InvalidInput([f"hotel {hotel_id} is not bookable through live inventory"])
        return hotel

    async def prebook_hotel(
        self,
        package_id: str,
        hotel_id: str,
        booking_code: str,
        expected_total: Decimal | None = None,
    ) -> RateQuote:
        """Lock a searched rate. ProviderError propagates to the caller."""
        await self._bookable_hotel(package_id, hotel_id)
        return await self.live_rates.client.prebook(booking_code, expected_total)

    async def book_hotel(
        self,
        package_id: str,
        hotel_id: str,
        booking_code: str,
        guest_details: GuestDetails,
        reference: str,
        total_fare: Decimal | None = None,
    ) -> BookingConfirmation:
        await self._bookable_hotel(package_id, hotel_id)
        return await self.live_rates.client.book(booking_code, guest_details, reference, total_fare)

    # ---------- Pipeline ----------

    def _validate(self, travelers: TravelerCount, date_range: DateRange | None) -> None:
        violations = travelers.violations()
        if date_range is not None:
            violations.extend(date_range.violations(self.today()))
        if violations:
            raise InvalidInput(violations)

    async def _price(
        self,
        package: PackageSnapshot,
        travelers: TravelerCount,
        date_range: DateRange | None,
        currency: str | None,
        live: bool,
        update_type: str = "detailed",
    ) -> PricingResult:
        use_live = live and date_range is not None and self.live_rates is not None

        resolved = await asyncio.gather(
            *(self._resolve_stay(package, stay, travelers, date_range, use_live) for stay in package.stays)
        )

        stays: list[ResolvedStay] = []
        quotes: list[HotelRateQuote] = []
        errors: list[HotelPricingError] = []
        attempted = 0
        provider_failures = 0
        for outcome in resolved:
            stay, quote, error, tried_live = outcome
            attempted += tried_live
            if stay is not None:
                stays.append(stay)
            if quote is not None:
                quotes.append(quote)
            if error is not None:
                errors.append(error)
                if tried_live:
                    provider_failures += 1

        warnings = list(package.warnings)
        discount_type, discount_warning = self.calculator.normalize_discount_type(package.discount_type)
        if discount_warning:
            warnings.append(discount_warning)
        if currency and currency.upper() != package.currency:
            warnings.append(
                f"Requested currency {currency.upper()} differs from package currency {package.currency}; "
                f"amounts are shown in {package.currency}"
            )
        for error in errors:
            if error.kind == "not_found":
                warnings.append(f"Hotel {error.hotel_id} not found; excluded from pricing")
            else:
                warnings.append(f"Live rate unavailable for hotel {error.hotel_id}; static rate used")

        base = self.calculator.base_portion(package, travelers)
        discount = self.calculator.apply_discount(base.subtotal, discount_type, package.discount_value)
        hotel_portion, hotel_warnings = self.calculator.hotel_portion(stays)
        taxes = self.calculator.taxes_and_fees(stays)
        breakdown = self.calculator.compose(
            base, discount, hotel_portion, taxes, package.currency, travelers, warnings + hotel_warnings
        )

        if attempted == 0:
            provider_status = "static"
        elif provider_failures == 0:
            provider_status = "live"
        elif provider_failures < attempted:
            provider_status = "degraded"
        else:
            provider_status = "unavailable"

        logger.info(
            f"Priced package {package.id} ({update_type}): total={breakdown.grand_total} "
            f"{breakdown.currency}, hotels={len(hotel_portion)}, errors={len(errors)}, status={provider_status}"
        )
        return PricingResult(
            package_id=package.id,
            package_title=package.title,
            travelers=travelers,
            date_range=date_range,
            breakdown=breakdown,
            hotels=tuple(quotes),
            errors=tuple(errors),
            provider_status=provider_status,
            update_type=update_type,
        )

    async def _resolve_stay(
        self,
        package: PackageSnapshot,
        stay: StayPlan,
        travelers: TravelerCount,
        date_range: DateRange | None,
        use_live: bool,
    ) -> tuple[ResolvedStay | None, HotelRateQuote | None, HotelPricingError | None, bool]:
        """Returns (stay, live quote, error, whether live was attempted)."""
        hotel = package.hotels.get(stay.hotel_id)
        if hotel is None:
            logger.warning(f"Package {package.id} references missing hotel {stay.hotel_id}")
            return None, None, HotelPricingError(stay.hotel_id, "not_found", "Hotel not found"), False

        # Live and static quotes cover the same rooms
        room_plan = allocate_rooms(travelers, stay.guests_per_room, min_rooms=stay.rooms_needed)
        check_in = date_range.day(stay.check_in_day) if date_range else None
        check_out = check_in + timedelta(days=stay.nights) if check_in else None

        if hotel.base_price is not None:
            nightly_rate, currency = hotel.base_price, hotel.currency
        else:
            nightly_rate, currency = stay.price_per_night, stay.currency or hotel.currency
        static = ResolvedStay(
            hotel_id=hotel.id,
            hotel_name=hotel.name,
            nights=stay.nights,
            rooms=len(room_plan),
            currency=currency,
            source="static",
            nightly_rate=nightly_rate,
            taxes=stay.taxes,
            service_fees=stay.service_fees,
            check_in=check_in,
            check_out=check_out,
        )

        if not (use_live and hotel.is_live_priced and stay.nights > 0):
            return static, None, None, False

        try:
            quote = await self.live_rates.get_quote(hotel, check_in, check_out, room_plan)
        except ProviderError as e:
            logger.warning(f"Live pricing failed for hotel {hotel.id} ({e.kind.value}); using static rate")
            return static, None, HotelPricingError(hotel.id, e.kind.value, e.message), True
        except InvalidInput as e:
            logger.warning(f"Live search rejected for hotel {hotel.id}: {e}")
            return static, None, HotelPricingError(hotel.id, "invalid_input", str(e)), True
        except Exception as e:
            logger.error(f"Unreadable live quote for hotel {hotel.id}: {e}; using static rate")
            return static, None, HotelPricingError(hotel.id, "invalid_response", str(e)), True

        room = quote.cheapest_room()
        live_stay = replace(
            static,
            currency=room.currency,
            source="live",
            nightly_rate=None,
            provider_total=room.effective_total,
        )
        return live_stay, quote, None, True
