"""Package pricing router — detailed pricing, estimates, comparisons, booking."""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends

from app.dependencies import get_pricing_orchestrator
from app.schemas.pricing import (
    BookRequest,
    CompareRequest,
    PrebookRequest,
    PricingRequest,
    UpdateTravelersRequest,
)
from app.routers.errors import http_error
from app.services.pricing.errors import PricingError
from app.services.pricing.orchestrator import PricingOrchestrator
from app.services.tbo_client import ProviderError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{package_id}/detailed")
async def detailed_pricing(
    package_id: str,
    req: PricingRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    """Full pricing; live hotel rates when dates are given."""
    try:
        result = await orchestrator.calculate_detailed_pricing(
            package_id, req.travelers.to_domain(), req.domain_dates(), req.currency
        )
    except PricingError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/{package_id}/estimate")
async def quick_estimate(
    package_id: str,
    req: PricingRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    try:
        result = await orchestrator.get_quick_estimate(package_id, req.travelers.to_domain(), req.currency)
    except PricingError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/{package_id}/update-travelers")
async def update_travelers(
    package_id: str,
    req: UpdateTravelersRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    """Re-price after a traveler change; an estimate unless hotels are requested."""
    try:
        result = await orchestrator.update_travelers(
            package_id,
            req.travelers.to_domain(),
            include_hotels=req.include_hotels,
            date_range=req.domain_dates(),
            currency=req.currency,
        )
    except PricingError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/{package_id}/update-dates")
async def update_dates(
    package_id: str,
    req: PricingRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    try:
        result = await orchestrator.update_dates(
            package_id, req.domain_dates(), req.travelers.to_domain(), req.currency
        )
    except PricingError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/{package_id}/hotels")
async def hotel_pricing(
    package_id: str,
    req: PricingRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    """Hotel part of the price only."""
    try:
        result = await orchestrator.hotel_pricing(package_id, req.domain_dates(), req.travelers.to_domain())
    except PricingError as e:
        raise http_error(e)

    breakdown = result.breakdown
    return {
        "packageId": result.package_id,
        "dateRange": result.date_range.to_dict() if result.date_range else None,
        "travelers": result.travelers.to_dict(),
        "hotels": [h.to_dict() for h in breakdown.hotel_portion],
        "summary": breakdown.hotel_summary(),
        "quotes": [q.to_dict() for q in result.hotels],
        "errors": [e.to_dict() for e in result.errors],
        "providerStatus": result.provider_status,
        "warnings": list(breakdown.warnings),
    }


@router.post("/{package_id}/compare")
async def compare_configurations(
    package_id: str,
    req: CompareRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    """Price up to a handful of traveler configurations side by side."""
    try:
        result = await orchestrator.compare_configurations(
            package_id,
            [c.to_domain() for c in req.configurations],
            req.date_range.to_domain() if req.date_range else None,
            req.currency,
        )
    except PricingError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/{package_id}/prebook")
async def prebook_hotel(
    package_id: str,
    req: PrebookRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    """Revalidate a live rate right before booking."""
    expected = Decimal(str(req.expected_total)) if req.expected_total is not None else None
    try:
        quote = await orchestrator.prebook_hotel(package_id, req.hotel_id, req.booking_code, expected)
    except (PricingError, ProviderError) as e:
        if isinstance(e, ProviderError):
            logger.warning(f"Prebook failed for package {package_id} ({e.kind.value}): {e.message}")
        raise http_error(e)
    return quote.to_dict()


@router.post("/{package_id}/book")
async def book_hotel(
    package_id: str,
    req: BookRequest,
    orchestrator: PricingOrchestrator = Depends(get_pricing_orchestrator),
):
    """Book a validated rate; repeating a reference returns the first confirmation."""
    total = Decimal(str(req.total_fare)) if req.total_fare is not None else None
    try:
        confirmation = await orchestrator.book_hotel(
            package_id,
            req.hotel_id,
            req.booking_code,
            req.guest_details(),
            req.reference,
            total,
        )
    except (PricingError, ProviderError) as e:
        if isinstance(e, ProviderError):
            logger.warning(f"Booking failed for package {package_id} ({e.kind.value}): {e.message}")
        raise http_error(e)
    return confirmation.to_dict()
