from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_pricing_orchestrator
from app.main import app
from app.services.pricing.errors import NotFound
from app.services.pricing.orchestrator import PricingOrchestrator
from app.services.pricing.package_store import PackageStore
from app.services.pricing.types import BookingConfirmation, PackageSnapshot
from app.services.tbo_client import ProviderError, ProviderErrorKind

TODAY = date(2030, 6, 1)


class _FakeStore(PackageStore):
    async def load_package(self, package_id: str) -> PackageSnapshot:
        if package_id != "pkg-1":
            raise NotFound("Package", package_id)
        return PackageSnapshot(
            id="pkg-1",
            title="Makkah and Madinah 5 days",
            duration=5,
            price_adult=Decimal("500"),
            price_child=Decimal("250"),
            price_infant=None,
            currency="SAR",
            discount_type="percentage",
            discount_value=Decimal("10"),
        )


class _BookingOrchestrator:
    """Stands in for the orchestrator's prebook/book calls."""

    def __init__(self, prebook_error: ProviderError | None = None) -> None:
        self.prebook_error = prebook_error

    async def prebook_hotel(self, package_id, hotel_id, booking_code, expected_total=None):
        raise self.prebook_error

    async def book_hotel(self, package_id, hotel_id, booking_code, guest_details, reference, total_fare=None):
        return BookingConfirmation(
            confirmation_number="TBO-778812",
            reference=reference,
            booking_code=booking_code,
            status="confirmed",
            total_fare=total_fare,
            booked_at=datetime(2030, 6, 1, 9, 30, tzinfo=timezone.utc),
        )


@pytest.fixture
def client():
    app.dependency_overrides[get_pricing_orchestrator] = lambda: PricingOrchestrator(
        _FakeStore(), live_rates=None, today=lambda: TODAY
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_detailed_pricing_returns_breakdown(client: TestClient) -> None:
    resp = client.post("/api/package-pricing/pkg-1/detailed", json={"travelers": {"adults": 2, "children": 1}})

    assert resp.status_code == 200
    body = resp.json()
    assert body["breakdown"]["packagePortion"]["subtotal"] == 1250.0
    assert body["breakdown"]["discount"]["amount"] == 125.0
    assert body["breakdown"]["grandTotal"] == 1125.0
    assert body["breakdown"]["pricePerPerson"] == 375.0
    assert body["providerStatus"] == "static"


def test_past_dates_are_400_with_violations(client: TestClient) -> None:
    resp = client.post(
        "/api/package-pricing/pkg-1/detailed",
        json={"travelers": {"adults": 2}, "dateRange": {"startDate": "2030-05-31", "endDate": "2030-06-03"}},
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["violations"] == ["dateRange.startDate cannot be in the past"]


def test_unknown_package_is_404(client: TestClient) -> None:
    resp = client.post("/api/package-pricing/other/estimate", json={"travelers": {"adults": 1}})
    assert resp.status_code == 404


def test_update_dates_requires_range(client: TestClient) -> None:
    resp = client.post("/api/package-pricing/pkg-1/update-dates", json={"travelers": {"adults": 1}})
    assert resp.status_code == 400


def test_compare_limits_configurations(client: TestClient) -> None:
    resp = client.post(
        "/api/package-pricing/pkg-1/compare",
        json={"configurations": [{"adults": 1}] * 6},
    )

    assert resp.status_code == 400
    assert "maximum 5" in resp.json()["detail"]["message"]


def test_compare_recommends_cheapest_per_person(client: TestClient) -> None:
    resp = client.post(
        "/api/package-pricing/pkg-1/compare",
        json={"configurations": [{"adults": 2}, {"adults": 2, "children": 2}]},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["recommendedConfigIndex"] == 1
    assert body["comparisons"][1]["pricing"]["perPerson"] == 337.5


def test_rate_change_on_prebook_is_409_refresh(client: TestClient) -> None:
    error = ProviderError(ProviderErrorKind.RATE_CHANGED, "Rate changed from 240.5 to 262.0 USD")
    app.dependency_overrides[get_pricing_orchestrator] = lambda: _BookingOrchestrator(error)

    resp = client.post(
        "/api/package-pricing/pkg-1/prebook",
        json={"hotelId": "makkah", "bookingCode": "1402689!TB!1"},
    )

    assert resp.status_code == 409
    assert resp.json()["detail"]["action"] == "refresh_and_retry"


def test_sold_out_on_prebook_is_409_choose_another(client: TestClient) -> None:
    error = ProviderError(ProviderErrorKind.NO_AVAILABILITY, "Room not available")
    app.dependency_overrides[get_pricing_orchestrator] = lambda: _BookingOrchestrator(error)

    resp = client.post(
        "/api/package-pricing/pkg-1/prebook",
        json={"hotelId": "makkah", "bookingCode": "1402689!TB!1"},
    )

    assert resp.status_code == 409
    assert resp.json()["detail"]["action"] == "choose_another_hotel"


def test_book_returns_confirmation(client: TestClient) -> None:
    app.dependency_overrides[get_pricing_orchestrator] = lambda: _BookingOrchestrator()

    resp = client.post(
        "/api/package-pricing/pkg-1/book",
        json={
            "hotelId": "makkah",
            "bookingCode": "1402689!TB!1",
            "reference": "PKG-2030-0001",
            "rooms": [[{"firstName": "Amal", "lastName": "Haddad", "title": "Mrs"}]],
            "email": "amal@example.com",
            "phone": "+966500000000",
            "totalFare": 240.5,
        },
    )

    assert resp.status_code == 200
    assert resp.json()["confirmationNumber"] == "TBO-778812"
    assert resp.json()["reference"] == "PKG-2030-0001"


def test_health(client: TestClient) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
