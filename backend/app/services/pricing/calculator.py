"""Package price calculator — base fares, discount, hotel costs, composition.

Pure arithmetic on Decimals; no I/O. The orchestrator decides which hotel
rates (live or static) feed ``hotel_portion``.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from app.services.pricing.config import pricing_config
from app.services.pricing.types import (
    BasePortion,
    DiscountResult,
    HotelPortionEntry,
    PackageSnapshot,
    PriceBreakdown,
    TaxOrFee,
    TravelerCount,
    TravelerLine,
)

logger = logging.getLogger(__name__)

cfg = pricing_config

ZERO = Decimal("0")


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(cfg.fares.money_quantum, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ResolvedStay:
    """One hotel stay with the rate chosen for it."""
    hotel_id: str
    hotel_name: str
    nights: int
    rooms: int
    currency: str
    source: str                        # "live" | "static"
    nightly_rate: Decimal | None = None
    provider_total: Decimal | None = None  # wins over nightly_rate when set
    taxes: Decimal | None = None
    service_fees: Decimal | None = None
    check_in: date | None = None
    check_out: date | None = None


class PackagePriceCalculator:
    """Builds a PriceBreakdown from a package snapshot and resolved stays."""

    def base_portion(self, package: PackageSnapshot, travelers: TravelerCount) -> BasePortion:
        adult_price = package.price_adult or ZERO
        child_price = package.price_child
        if child_price is None:
            child_price = money(adult_price * cfg.fares.child_share_of_adult)
        infant_price = package.price_infant if package.price_infant is not None else cfg.fares.infant_price

        adults = self._line(travelers.adults, adult_price)
        children = self._line(travelers.children, child_price)
        infants = self._line(travelers.infants, infant_price)
        return BasePortion(
            adults=adults,
            children=children,
            infants=infants,
            subtotal=money(adults.total + children.total + infants.total),
        )

    @staticmethod
    def _line(count: int, unit_price: Decimal) -> TravelerLine:
        count = max(0, count)
        return TravelerLine(count=count, unit_price=money(unit_price), total=money(unit_price * count))

    def normalize_discount_type(self, raw: str | None) -> tuple[str, str | None]:
        """Map a stored discount type to a supported one.

        Returns (type, warning); unsupported types price as "none".
        """
        name = (raw or "none").strip().lower()
        name = cfg.discounts.aliases.get(name, name)
        if name in cfg.discounts.supported:
            return name, None
        return "none", f"Discount type '{raw}' is not supported; no discount applied"

    def apply_discount(self, subtotal: Decimal, discount_type: str, discount_value: Decimal | None) -> DiscountResult:
        dtype, _ = self.normalize_discount_type(discount_type)
        value = Decimal(discount_value or 0)

        if dtype == "percentage":
            amount = money(subtotal * value / Decimal("100"))
        elif dtype == "fixed_amount":
            amount = money(min(value, subtotal))
        else:
            amount = ZERO

        # Never negative, never more than the subtotal
        amount = min(max(amount, ZERO), subtotal)
        return DiscountResult(
            type=dtype,
            value=value,
            amount=money(amount),
            final_subtotal=money(subtotal - amount),
        )

    def hotel_portion(self, stays: list[ResolvedStay]) -> tuple[list[HotelPortionEntry], list[str]]:
        """Total per stay; the provider total takes precedence over nightly x nights x rooms."""
        entries: list[HotelPortionEntry] = []
        warnings: list[str] = []

        for stay in stays:
            if stay.nights <= 0:
                total = ZERO
                warnings.append(f"{stay.hotel_name or stay.hotel_id}: zero-night stay priced at 0")
            elif stay.provider_total is not None:
                total = stay.provider_total
            elif stay.nightly_rate is not None:
                total = stay.nightly_rate * stay.nights * stay.rooms
            else:
                total = ZERO
                warnings.append(f"{stay.hotel_name or stay.hotel_id}: no rate available, hotel priced at 0")

            entries.append(
                HotelPortionEntry(
                    hotel_id=stay.hotel_id,
                    nights=stay.nights,
                    total=money(total),
                    currency=stay.currency,
                    hotel_name=stay.hotel_name,
                    source=stay.source,
                    rooms=stay.rooms,
                    check_in=stay.check_in,
                    check_out=stay.check_out,
                )
            )
        return entries, warnings

    def taxes_and_fees(self, stays: list[ResolvedStay]) -> list[TaxOrFee]:
        """Static stay taxes and service fees. Live totals already include tax."""
        items = []
        for stay in stays:
            if stay.source != "static" or stay.nights <= 0:
                continue
            label = stay.hotel_name or stay.hotel_id
            if stay.taxes:
                items.append(TaxOrFee(f"{label} taxes", money(stay.taxes), stay.currency, stay.hotel_id))
            if stay.service_fees:
                items.append(TaxOrFee(f"{label} service fees", money(stay.service_fees), stay.currency, stay.hotel_id))
        return items

    def compose(
        self,
        base: BasePortion,
        discount: DiscountResult,
        hotel_portion: list[HotelPortionEntry],
        taxes_and_fees: list[TaxOrFee],
        currency: str,
        travelers: TravelerCount,
        warnings: list[str] | None = None,
    ) -> PriceBreakdown:
        warnings = list(warnings or [])

        foreign = sorted(
            {h.currency for h in hotel_portion if h.currency != currency}
            | {t.currency for t in taxes_and_fees if t.currency != currency}
        )
        if foreign:
            # Amounts are summed as-is; no conversion is performed
            warnings.append(
                f"Currency mismatch: package priced in {currency}, hotel amounts in {', '.join(foreign)}"
            )

        hotel_total = sum((h.total for h in hotel_portion), ZERO)
        tax_total = sum((t.amount for t in taxes_and_fees), ZERO)
        grand_total = money(discount.final_subtotal + hotel_total + tax_total)
        per_person = money(grand_total / max(1, travelers.total))

        return PriceBreakdown(
            package_portion=base,
            discount=discount,
            hotel_portion=tuple(hotel_portion),
            taxes_and_fees=tuple(taxes_and_fees),
            grand_total=grand_total,
            currency=currency,
            price_per_person=per_person,
            warnings=tuple(warnings),
        )


price_calculator = PackagePriceCalculator()
