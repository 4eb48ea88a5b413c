from __future__ import annotations

import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from app.services.pricing.errors import InvalidInput
from app.services.pricing.types import GuestDetails, GuestName, RoomOccupancy
from app.services.tbo_client import ProviderError, ProviderErrorKind, TBOClient

TODAY = date(2030, 6, 1)
CHECK_IN = date(2030, 6, 10)
CHECK_OUT = date(2030, 6, 12)
CODE = "1402689!TB!1!TB!abc123"

SEARCH_OK = {
    "Status": {"Code": 200, "Description": "Successful"},
    "HotelResult": [
        {
            "HotelCode": "1402689",
            "Currency": "USD",
            "Rooms": [
                {
                    "Name": ["Suite,1 King Bed"],
                    "BookingCode": "suite-code",
                    "DayRates": [[{"BasePrice": 300.0}, {"BasePrice": 300.0}]],
                    "TotalFare": 650.0,
                    "TotalTax": 50.0,
                    "MealType": "BreakFast",
                    "IsRefundable": False,
                },
                {
                    "Name": ["Deluxe Room,2 Twin Beds"],
                    "BookingCode": CODE,
                    "DayRates": [[{"BasePrice": 100.0}, {"BasePrice": 120.0}]],
                    "TotalFare": 240.5,
                    "TotalTax": 20.5,
                    "ServiceTax": 0,
                    "MealType": "Room_Only",
                    "IsRefundable": True,
                    "CancelPolicies": [{"FromDate": "08-06-2030 00:00:00", "ChargeType": "Fixed", "CancellationCharge": 0}],
                },
                {"Name": ["Broken"], "BookingCode": "broken", "TotalFare": None},
            ],
        }
    ],
}


def _prebook_response(total: float) -> dict:
    return {
        "Status": {"Code": 200, "Description": "Successful"},
        "HotelResult": [
            {
                "HotelCode": "1402689",
                "Currency": "USD",
                "Rooms": [{"Name": ["Deluxe Room,2 Twin Beds"], "BookingCode": CODE, "TotalFare": total}],
            }
        ],
    }


class _Provider:
    """Routes TBO paths to canned handlers and records requests."""

    def __init__(self, routes: dict) -> None:
        self.routes = routes
        self.requests: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))
        handler = self.routes[request.url.path]
        if callable(handler):
            return handler(request)
        return httpx.Response(200, json=handler)

    def calls(self, path: str) -> int:
        return sum(1 for p, _ in self.requests if p == path)


def _client(provider: _Provider, **kwargs) -> TBOClient:
    params = dict(
        base_url="https://tbo.test",
        username="agency",
        password="secret",
        timeout_seconds=5.0,
        transport=httpx.MockTransport(provider),
        today=lambda: TODAY,
    )
    params.update(kwargs)
    return TBOClient(**params)


def _guests() -> GuestDetails:
    return GuestDetails(
        rooms=((GuestName("Amal", "Haddad", "Mrs"), GuestName("Omar", "Haddad")),),
        email="amal@example.com",
        phone="+966500000000",
    )


@pytest.mark.asyncio
async def test_search_normalizes_rooms_and_sends_composition() -> None:
    provider = _Provider({"/Search": SEARCH_OK})
    client = _client(provider)

    result = await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)], "sa")

    quote = result.quote_for("1402689")
    assert quote.available
    assert len(quote.rooms) == 2  # room without a fare is dropped
    cheapest = quote.cheapest_room()
    assert cheapest.booking_code == CODE
    assert cheapest.total_amount == Decimal("240.5")
    assert [n.amount for n in cheapest.nightly_rates] == [Decimal("100.0"), Decimal("120.0")]
    assert [n.date for n in cheapest.nightly_rates] == [CHECK_IN, date(2030, 6, 11)]
    assert cheapest.is_refundable is True

    path, body = provider.requests[0]
    assert path == "/Search"
    assert body["CheckIn"] == "2030-06-10"
    assert body["HotelCodes"] == "1402689"
    assert body["GuestNationality"] == "SA"
    assert body["PaxRooms"] == [{"Adults": 2, "Children": 0, "ChildrenAges": None}]
    assert body["ResponseTime"] == 23
    await client.close()


@pytest.mark.asyncio
async def test_search_rejects_bad_input_without_calling_provider() -> None:
    provider = _Provider({})
    client = _client(provider)

    with pytest.raises(InvalidInput) as exc:
        await client.search([], date(2030, 5, 30), date(2030, 5, 29), [])

    assert len(exc.value.violations) == 4
    assert provider.requests == []


@pytest.mark.asyncio
async def test_search_no_results_status_is_no_availability() -> None:
    provider = _Provider({"/Search": {"Status": {"Code": 201, "Description": "No Available rooms for given criteria"}}})
    client = _client(provider)

    with pytest.raises(ProviderError) as exc:
        await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    assert exc.value.kind == ProviderErrorKind.NO_AVAILABILITY


@pytest.mark.asyncio
async def test_non_json_body_is_invalid_response() -> None:
    provider = _Provider({"/Search": lambda request: httpx.Response(200, content=b"<html>maintenance</html>")})
    client = _client(provider)

    with pytest.raises(ProviderError) as exc:
        await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    assert exc.value.kind == ProviderErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_http_error_status_is_unavailable() -> None:
    provider = _Provider({"/Search": lambda request: httpx.Response(503, json={"error": "down"})})
    client = _client(provider)

    with pytest.raises(ProviderError) as exc:
        await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    assert exc.value.kind == ProviderErrorKind.UNAVAILABLE
    assert exc.value.http_status == 503


@pytest.mark.asyncio
async def test_transport_timeout_is_timeout() -> None:
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    client = _client(_Provider({"/Search": slow}))

    with pytest.raises(ProviderError) as exc:
        await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    assert exc.value.kind == ProviderErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_missing_credentials_is_unavailable() -> None:
    provider = _Provider({"/Search": SEARCH_OK})
    client = _client(provider, username="", password="")

    with pytest.raises(ProviderError) as exc:
        await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    assert exc.value.kind == ProviderErrorKind.UNAVAILABLE
    assert provider.requests == []


@pytest.mark.asyncio
async def test_prebook_detects_rate_change_against_search() -> None:
    provider = _Provider({"/Search": SEARCH_OK, "/PreBook": _prebook_response(262.0)})
    client = _client(provider)
    await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    with pytest.raises(ProviderError) as exc:
        await client.prebook(CODE)

    assert exc.value.kind == ProviderErrorKind.RATE_CHANGED
    assert exc.value.details["previousTotal"] == 240.5
    assert exc.value.details["currentTotal"] == 262.0


@pytest.mark.asyncio
async def test_prebook_unchanged_rate_returns_quote() -> None:
    provider = _Provider({"/Search": SEARCH_OK, "/PreBook": _prebook_response(240.5)})
    client = _client(provider)
    await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    quote = await client.prebook(CODE)

    assert quote.total_amount == Decimal("240.5")
    assert quote.currency == "USD"
    assert provider.requests[-1][1]["BookingCode"] == CODE


@pytest.mark.asyncio
async def test_prebook_sold_out_is_no_availability_not_rate_change() -> None:
    provider = _Provider({"/PreBook": {"Status": {"Code": 201, "Description": "Room not available"}}})
    client = _client(provider)

    with pytest.raises(ProviderError) as exc:
        await client.prebook(CODE, expected_total=Decimal("240.5"))

    assert exc.value.kind == ProviderErrorKind.NO_AVAILABILITY


@pytest.mark.asyncio
async def test_book_is_idempotent_per_reference() -> None:
    provider = _Provider({"/Book": {"Status": {"Code": 200}, "ConfirmationNumber": "TBO-778812"}})
    client = _client(provider)

    first, second = await asyncio.gather(
        client.book(CODE, _guests(), "PKG-2030-0001", Decimal("240.5")),
        client.book(CODE, _guests(), "PKG-2030-0001", Decimal("240.5")),
    )
    third = await client.book(CODE, _guests(), "PKG-2030-0001", Decimal("240.5"))

    assert provider.calls("/Book") == 1
    assert first == second == third
    assert first.confirmation_number == "TBO-778812"
    body = provider.requests[0][1]
    assert body["ClientReferenceId"] == "PKG-2030-0001"
    assert body["CustomerDetails"][0]["CustomerNames"][0]["FirstName"] == "Amal"


@pytest.mark.asyncio
async def test_reusing_reference_for_another_code_is_rejected() -> None:
    provider = _Provider({"/Book": {"Status": {"Code": 200}, "ConfirmationNumber": "TBO-1"}})
    client = _client(provider)
    await client.book(CODE, _guests(), "PKG-2030-0002")

    with pytest.raises(InvalidInput):
        await client.book("other-code", _guests(), "PKG-2030-0002")

    assert provider.calls("/Book") == 1


@pytest.mark.asyncio
async def test_book_after_timeout_checks_provider_before_rebooking() -> None:
    attempts = {"book": 0}

    def book(request: httpx.Request) -> httpx.Response:
        attempts["book"] += 1
        raise httpx.ReadTimeout("read timed out", request=request)

    provider = _Provider({
        "/Book": book,
        "/BookingDetail": {"Status": {"Code": 200}, "BookingDetail": {"ConfirmationNo": "TBO-99", "BookingStatus": "Confirmed"}},
    })
    client = _client(provider)

    with pytest.raises(ProviderError) as exc:
        await client.book(CODE, _guests(), "PKG-2030-0003")
    assert exc.value.kind == ProviderErrorKind.TIMEOUT

    confirmation = await client.book(CODE, _guests(), "PKG-2030-0003")

    assert confirmation.confirmation_number == "TBO-99"
    assert attempts["book"] == 1
    assert provider.requests[-1][1]["BookingReferenceId"] == "PKG-2030-0003"


@pytest.mark.asyncio
async def test_cancel_and_hotel_details() -> None:
    provider = _Provider({
        "/Cancel": {"Status": {"Code": 200}, "ConfirmationNumber": "TBO-1"},
        "/HotelDetails": {"Status": {"Code": 200}, "HotelDetails": [{"HotelCode": "1402689", "HotelName": "Hilton Suites Makkah"}]},
    })
    client = _client(provider)

    assert (await client.cancel_booking("TBO-1"))["status"] == "cancelled"
    assert (await client.hotel_details("1402689"))["HotelName"] == "Hilton Suites Makkah"


@pytest.mark.asyncio
async def test_book_after_dropped_connection_checks_provider_before_rebooking() -> None:
    attempts = {"book": 0}

    def book(request: httpx.Request) -> httpx.Response:
        attempts["book"] += 1
        if attempts["book"] == 1:
            raise httpx.ReadError("connection reset by peer", request=request)
        return httpx.Response(200, json={"Status": {"Code": 200}, "ConfirmationNumber": "CNF-2"})

    provider = _Provider({
        "/Book": book,
        "/BookingDetail": {"Status": {"Code": 200}, "BookingDetail": {"ConfirmationNo": "CNF-1"}},
    })
    client = _client(provider)

    with pytest.raises(ProviderError) as exc:
        await client.book(CODE, _guests(), "PKG-2030-0004")
    assert exc.value.kind == ProviderErrorKind.UNAVAILABLE

    confirmation = await client.book(CODE, _guests(), "PKG-2030-0004")

    assert confirmation.confirmation_number == "CNF-1"
    assert provider.calls("/Book") == 1
    assert provider.calls("/BookingDetail") == 1


@pytest.mark.asyncio
async def test_book_after_gateway_error_checks_provider_before_rebooking() -> None:
    provider = _Provider({
        "/Book": lambda request: httpx.Response(502, text="Bad Gateway"),
        "/BookingDetail": {"Status": {"Code": 201, "Description": "No booking found"}},
    })
    client = _client(provider)

    with pytest.raises(ProviderError):
        await client.book(CODE, _guests(), "PKG-2030-0005")
    provider.routes["/Book"] = {"Status": {"Code": 200}, "ConfirmationNumber": "CNF-7"}

    confirmation = await client.book(CODE, _guests(), "PKG-2030-0005")

    assert confirmation.confirmation_number == "CNF-7"
    assert [path for path, _ in provider.requests] == ["/Book", "/BookingDetail", "/Book"]


@pytest.mark.asyncio
async def test_book_after_refused_connection_rebooks_directly() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _Provider({"/Book": refused})
    client = _client(provider)

    with pytest.raises(ProviderError):
        await client.book(CODE, _guests(), "PKG-2030-0006")
    provider.routes["/Book"] = {"Status": {"Code": 200}, "ConfirmationNumber": "CNF-8"}

    confirmation = await client.book(CODE, _guests(), "PKG-2030-0006")

    assert confirmation.confirmation_number == "CNF-8"
    assert provider.calls("/BookingDetail") == 0


@pytest.mark.asyncio
async def test_cancelled_book_is_checked_before_rebooking() -> None:
    started = asyncio.Event()

    async def hang(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.sleep(60)
        return httpx.Response(200, json={})

    provider = _Provider({
        "/Book": hang,
        "/BookingDetail": {"Status": {"Code": 200}, "BookingDetail": {"ConfirmationNo": "CNF-9"}},
    })
    client = _client(provider)

    task = asyncio.create_task(client.book(CODE, _guests(), "PKG-2030-0007"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    confirmation = await client.book(CODE, _guests(), "PKG-2030-0007")

    assert confirmation.confirmation_number == "CNF-9"
    assert provider.calls("/Book") == 1


@pytest.mark.asyncio
async def test_booking_locks_are_released_once_settled() -> None:
    provider = _Provider({"/Book": {"Status": {"Code": 200}, "ConfirmationNumber": "TBO-5"}})
    client = _client(provider)

    await asyncio.gather(*(client.book(CODE, _guests(), f"PKG-2030-01{i:02d}") for i in range(20)))

    assert client._booking_locks == {}
    assert client._lock_users == {}


@pytest.mark.asyncio
async def test_non_finite_fares_are_ignored() -> None:
    search = json.loads(json.dumps(SEARCH_OK))
    search["HotelResult"][0]["Rooms"][0]["TotalFare"] = "NaN"
    search["HotelResult"][0]["Rooms"][2]["TotalFare"] = "Infinity"
    client = _client(_Provider({"/Search": search}))

    result = await client.search(["1402689"], CHECK_IN, CHECK_OUT, [RoomOccupancy(adults=2)])

    quote = result.quote_for("1402689")
    assert [r.booking_code for r in quote.rooms] == [CODE]
    assert quote.cheapest_room().total_amount == Decimal("240.5")


@pytest.mark.asyncio
async def test_city_and_hotel_lists() -> None:
    provider = _Provider({
        "/CityList": {"Status": {"Code": 200}, "CityList": [{"Code": "130443", "Name": "Makkah"}, {"Name": "no code"}]},
        "/TBOHotelCodeList": {"Status": {"Code": 200}, "Hotels": [{"HotelCode": "1402689", "HotelName": "Hilton Suites Makkah"}]},
    })
    client = _client(provider)

    cities = await client.city_list("sa")
    hotels = await client.hotels_by_city("130443")

    assert cities == [{"Code": "130443", "Name": "Makkah"}]
    assert hotels[0]["HotelCode"] == "1402689"
    assert provider.requests[0][1] == {"CountryCode": "SA"}
    assert provider.requests[1][1] == {"CityCode": "130443", "IsDetailedResponse": True}
