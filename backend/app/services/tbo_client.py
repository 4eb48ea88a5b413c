"""TBO hotel API client — search, prebook and book against live inventory.

Search finds options, PreBook locks a quoted rate immediately before
booking, Book confirms. Nothing here retries: a failed call surfaces as a
``ProviderError`` whose ``kind`` tells the caller what to do next.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, MutableMapping
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import httpx

from app.config import settings
from app.services.pricing.config import pricing_config, pricing_today
from app.services.pricing.errors import InvalidInput
from app.services.pricing.rate_cache import utcnow
from app.services.pricing.types import (
    BookingConfirmation,
    GuestDetails,
    HotelRateQuote,
    NightlyRate,
    RateQuote,
    RoomOccupancy,
    RoomRate,
    SearchResultSet,
)

logger = logging.getLogger(__name__)

TBO_STATUS_OK = 200
TBO_STATUS_NO_RESULTS = 201

# Booking codes remembered from searches, for rate-change checks at prebook
MAX_REMEMBERED_QUOTES = 5000


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    NO_AVAILABILITY = "no_availability"
    RATE_CHANGED = "rate_changed"
    UNAVAILABLE = "unavailable"


class ProviderError(Exception):
    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
        request_sent: bool = True,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.http_status = http_status
        self.details = details or {}
        # False only when the provider never received the request
        self.request_sent = request_sent

    @property
    def outcome_known(self) -> bool:
        """Whether the provider definitely did not act on the request."""
        if not self.request_sent:
            return True
        return self.http_status is not None and 400 <= self.http_status < 500


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _short(code: str) -> str:
    return code if len(code) <= 20 else f"{code[:20]}..."


class TBOClient:
    """Adapter for the TBO Holidays hotel API."""

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout_seconds: float | None = None,
        response_time: int | None = None,
        guest_nationality: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        today: Callable[[], date] = pricing_today,
        clock: Callable[[], datetime] = utcnow,
        confirmations: MutableMapping[str, BookingConfirmation] | None = None,
    ):
        self._base_url = base_url or settings.tbo_base_url
        self._username = settings.tbo_username if username is None else username
        self._password = settings.tbo_password if password is None else password
        self._timeout = timeout_seconds or settings.tbo_timeout_seconds
        self._response_time = response_time or settings.tbo_response_time
        self._nationality = guest_nationality or settings.tbo_guest_nationality
        self._transport = transport
        self._today = today
        self._clock = clock
        self._client: httpx.AsyncClient | None = None
        self._quoted: OrderedDict[str, Decimal] = OrderedDict()
        self._confirmations = confirmations if confirmations is not None else {}
        self._booking_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._uncertain_references: set[str] = set()

    @property
    def configured(self) -> bool:
        return bool(self._username and self._password)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                auth=(self._username, self._password),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def _post(self, path: str, payload: dict) -> dict:
        if not self.configured:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE, "TBO credentials not configured", request_sent=False
            )

        client = await self._get_client()
        started = time.monotonic()
        try:
            resp = await asyncio.wait_for(client.post(path, json=payload), timeout=self._timeout)
            resp.raise_for_status()
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"TBO {path} timed out after {self._timeout}s",
                request_sent=not isinstance(e, httpx.ConnectTimeout),
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE, f"TBO {path} returned HTTP {status}", http_status=status
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE,
                f"TBO {path} request error: {e}",
                request_sent=not isinstance(e, httpx.ConnectError),
            ) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(f"TBO {path} -> {resp.status_code} in {elapsed_ms}ms")

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, f"TBO {path} returned non-JSON body") from e
        if not isinstance(data, dict):
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, f"TBO {path} returned unexpected payload")
        return data

    @staticmethod
    def _status(data: dict) -> tuple[int | None, str]:
        status = data.get("Status") or {}
        if not isinstance(status, dict):
            return None, ""
        try:
            code = int(status.get("Code"))
        except (TypeError, ValueError):
            code = None
        return code, str(status.get("Description") or "")

    def _raise_for_status(self, path: str, data: dict, results: Any) -> None:
        code, description = self._status(data)
        if code == TBO_STATUS_NO_RESULTS or (code == TBO_STATUS_OK and not results):
            raise ProviderError(
                ProviderErrorKind.NO_AVAILABILITY, description or f"TBO {path}: no availability"
            )
        if code != TBO_STATUS_OK:
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE, description or f"TBO {path} failed with status {code}"
            )

    # ---------- Search ----------

    async def search(
        self,
        hotel_codes: list[str],
        check_in: date,
        check_out: date,
        rooms: list[RoomOccupancy],
        nationality: str | None = None,
        refundable_only: bool = False,
        meal_type: str = "All",
    ) -> SearchResultSet:
        """Search live rates for the given hotels and room composition."""
        codes = [str(c).strip() for c in hotel_codes if str(c).strip()]
        violations = []
        if not codes:
            violations.append("hotelCodes must not be empty")
        if check_in >= check_out:
            violations.append("checkOut must be after checkIn")
        if check_in < self._today():
            violations.append("checkIn cannot be in the past")
        if not rooms:
            violations.append("rooms must not be empty")
        if violations:
            raise InvalidInput(violations)

        payload = {
            "CheckIn": check_in.isoformat(),
            "CheckOut": check_out.isoformat(),
            "HotelCodes": ",".join(codes),
            "GuestNationality": (nationality or self._nationality).upper(),
            "PaxRooms": [room.to_tbo() for room in rooms],
            "ResponseTime": self._response_time,
            "IsDetailedResponse": True,
            "Filters": {
                "Refundable": refundable_only,
                "NoOfRooms": 0,
                "MealType": meal_type,
            },
        }

        data = await self._post("/Search", payload)
        results = data.get("HotelResult") or []
        self._raise_for_status("/Search", data, results)
        if not isinstance(results, list):
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, "TBO /Search HotelResult is not a list")

        hotels = tuple(self._parse_hotel(h, check_in, check_out) for h in results)
        for quote in hotels:
            for room in quote.rooms:
                self._remember_quote(room)

        logger.info(
            f"TBO search {check_in}..{check_out} codes={len(codes)}: "
            f"{sum(1 for h in hotels if h.available)} available"
        )
        return SearchResultSet(
            check_in=check_in,
            check_out=check_out,
            hotels=hotels,
            searched_at=self._clock(),
        )

    def _parse_hotel(self, raw: Any, check_in: date, check_out: date) -> HotelRateQuote:
        if not isinstance(raw, dict) or not raw.get("HotelCode"):
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, "TBO hotel result without HotelCode")

        currency = raw.get("Currency") or "USD"
        raw_rooms = raw.get("Rooms") or []
        rooms = [r for r in (self._parse_room(room, currency, check_in) for room in raw_rooms) if r]
        if raw_rooms and not rooms:
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE,
                f"TBO hotel {raw['HotelCode']} returned rooms without usable fares",
            )

        return HotelRateQuote(
            hotel_code=str(raw["HotelCode"]),
            check_in=check_in,
            check_out=check_out,
            available=bool(rooms),
            rooms=tuple(rooms),
            currency=currency,
        )

    @staticmethod
    def _parse_room(raw: Any, currency: str, check_in: date | None) -> RoomRate | None:
        if not isinstance(raw, dict):
            return None
        total = _to_decimal(raw.get("TotalFare"))
        if total is None:
            logger.debug(f"Skipping TBO room without TotalFare: {_short(raw.get('BookingCode') or '')}")
            return None

        # DayRates holds one list of nights per booked room; nights are summed across rooms
        per_night: list[Decimal] = []
        if check_in is not None:
            for room_days in raw.get("DayRates") or []:
                if not isinstance(room_days, list):
                    continue
                for i, day in enumerate(room_days):
                    amount = _to_decimal(day.get("BasePrice")) if isinstance(day, dict) else None
                    if amount is None:
                        continue
                    if i < len(per_night):
                        per_night[i] += amount
                    else:
                        per_night.append(amount)

        names = raw.get("Name") or []
        return RoomRate(
            room_type_code=names[0] if names else "Standard Room",
            nightly_rates=tuple(
                NightlyRate(date=check_in + timedelta(days=i), amount=amount, currency=currency)
                for i, amount in enumerate(per_night)
            ),
            total_amount=total,
            currency=currency,
            board_type=raw.get("MealType") or "Room Only",
            cancellation_policy=tuple(p for p in raw.get("CancelPolicies") or [] if isinstance(p, dict)),
            is_refundable=bool(raw.get("IsRefundable", False)),
            booking_code=raw.get("BookingCode") or "",
            total_tax=_to_decimal(raw.get("TotalTax")) or Decimal("0"),
            service_tax=_to_decimal(raw.get("ServiceTax")) or Decimal("0"),
        )

    def _remember_quote(self, room: RoomRate) -> None:
        if not room.booking_code:
            return
        self._quoted[room.booking_code] = room.effective_total
        self._quoted.move_to_end(room.booking_code)
        while len(self._quoted) > MAX_REMEMBERED_QUOTES:
            self._quoted.popitem(last=False)

    # ---------- PreBook ----------

    async def prebook(
        self,
        booking_code: str,
        expected_total: Decimal | None = None,
        payment_mode: str = "Limit",
    ) -> RateQuote:
        """Revalidate a searched rate right before booking.

        Raises RATE_CHANGED when the locked total differs from the searched
        one and NO_AVAILABILITY when the room is gone.
        """
        if not booking_code:
            raise InvalidInput(["bookingCode is required"])

        data = await self._post("/PreBook", {"BookingCode": booking_code, "PaymentMode": payment_mode})
        results = data.get("HotelResult") or []
        self._raise_for_status("/PreBook", data, results)

        hotel = results[0] if isinstance(results, list) and isinstance(results[0], dict) else {}
        currency = hotel.get("Currency") or "USD"
        room = next(
            (parsed for parsed in (self._parse_room(r, currency, None) for r in hotel.get("Rooms") or []) if parsed),
            None,
        )
        if room is None:
            raise ProviderError(
                ProviderErrorKind.NO_AVAILABILITY,
                f"Booking code {_short(booking_code)} is no longer available",
            )

        previous = expected_total if expected_total is not None else self._quoted.get(booking_code)
        current = room.effective_total
        if previous is not None and abs(current - previous) > pricing_config.rate_change_tolerance:
            logger.warning(f"TBO rate changed for {_short(booking_code)}: {previous} -> {current}")
            raise ProviderError(
                ProviderErrorKind.RATE_CHANGED,
                f"Rate changed from {previous} to {current} {currency}",
                details={"previousTotal": float(previous), "currentTotal": float(current), "currency": currency},
            )

        self._quoted[booking_code] = current
        return RateQuote(
            booking_code=booking_code,
            room=room,
            total_amount=current,
            currency=currency,
            validated_at=self._clock(),
        )

    # ---------- Book ----------

    async def book(
        self,
        booking_code: str,
        guest_details: GuestDetails,
        reference: str,
        total_fare: Decimal | None = None,
        booking_type: str = "Voucher",
        payment_mode: str = "Limit",
    ) -> BookingConfirmation:
        """Confirm a booking. Repeated calls with one reference book once."""
        violations = []
        if not booking_code:
            violations.append("bookingCode is required")
        if not reference:
            violations.append("reference is required")
        if not guest_details.rooms:
            violations.append("guestDetails must list at least one room")
        if violations:
            raise InvalidInput(violations)

        lock = self._booking_locks.setdefault(reference, asyncio.Lock())
        self._lock_users[reference] = self._lock_users.get(reference, 0) + 1
        try:
            async with lock:
                return await self._book_once(
                    booking_code, guest_details, reference, total_fare, booking_type, payment_mode
                )
        finally:
            self._lock_users[reference] -= 1
            if not self._lock_users[reference]:
                del self._lock_users[reference]
                self._booking_locks.pop(reference, None)

    async def _book_once(
        self,
        booking_code: str,
        guest_details: GuestDetails,
        reference: str,
        total_fare: Decimal | None,
        booking_type: str,
        payment_mode: str,
    ) -> BookingConfirmation:
        existing = self._confirmations.get(reference)
        if existing is None and reference in self._uncertain_references:
            existing = await self._recover_confirmation(booking_code, reference, total_fare)
        if existing is not None:
            if existing.booking_code != booking_code:
                raise InvalidInput([f"reference {reference} was already used for another booking"])
            logger.info(f"Returning existing confirmation for reference {reference}")
            return existing

        payload = {
            "BookingCode": booking_code,
            "CustomerDetails": guest_details.to_tbo(),
            "ClientReferenceId": reference,
            "BookingReferenceId": reference,
            "TotalFare": float(total_fare) if total_fare is not None else None,
            "EmailId": guest_details.email,
            "PhoneNumber": guest_details.phone,
            "BookingType": booking_type,
            "PaymentMode": payment_mode,
        }

        # Uncertain until the provider gives a definite answer; the next
        # attempt then asks /BookingDetail before booking again
        self._uncertain_references.add(reference)
        settled = False
        try:
            data = await self._post("/Book", payload)
            code, description = self._status(data)
            settled = code != TBO_STATUS_OK or bool(data.get("ConfirmationNumber"))
        except ProviderError as e:
            settled = e.outcome_known
            raise
        finally:
            if settled:
                self._uncertain_references.discard(reference)
            else:
                logger.warning(f"TBO /Book outcome unknown for reference {reference}")

        if code == TBO_STATUS_NO_RESULTS:
            raise ProviderError(ProviderErrorKind.NO_AVAILABILITY, description or "Room no longer available")
        if code != TBO_STATUS_OK or not data.get("ConfirmationNumber"):
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE, description or f"TBO /Book failed with status {code}"
            )

        confirmation = BookingConfirmation(
            confirmation_number=str(data["ConfirmationNumber"]),
            reference=reference,
            booking_code=booking_code,
            status="confirmed",
            total_fare=total_fare if total_fare is not None else Decimal("0"),
            booked_at=self._clock(),
        )
        self._confirmations[reference] = confirmation
        logger.info(f"TBO booking confirmed: {confirmation.confirmation_number} ref={reference}")
        return confirmation

    async def _recover_confirmation(
        self, booking_code: str, reference: str, total_fare: Decimal | None
    ) -> BookingConfirmation | None:
        try:
            detail = await self.booking_detail(reference=reference)
        except ProviderError as e:
            logger.warning(f"Could not verify earlier booking attempt {reference}: {e}")
            raise
        number = detail.get("ConfirmationNo") or detail.get("ConfirmationNumber") if detail else None
        if not number:
            self._uncertain_references.discard(reference)
            return None
        confirmation = BookingConfirmation(
            confirmation_number=str(number),
            reference=reference,
            booking_code=booking_code,
            status="confirmed",
            total_fare=total_fare if total_fare is not None else Decimal("0"),
            booked_at=self._clock(),
        )
        self._confirmations[reference] = confirmation
        self._uncertain_references.discard(reference)
        return confirmation

    # ---------- Follow-up and metadata ----------

    async def booking_detail(
        self,
        confirmation_number: str | None = None,
        reference: str | None = None,
        payment_mode: str = "Limit",
    ) -> dict | None:
        payload: dict[str, Any] = {"PaymentMode": payment_mode}
        if confirmation_number:
            payload["ConfirmationNumber"] = confirmation_number
        elif reference:
            payload["BookingReferenceId"] = reference
        else:
            raise InvalidInput(["confirmationNumber or reference is required"])

        data = await self._post("/BookingDetail", payload)
        code, description = self._status(data)
        if code == TBO_STATUS_NO_RESULTS:
            return None
        if code != TBO_STATUS_OK:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, description or "TBO /BookingDetail failed")
        return data.get("BookingDetail")

    async def cancel_booking(self, confirmation_number: str) -> dict:
        data = await self._post("/Cancel", {"ConfirmationNumber": confirmation_number})
        code, description = self._status(data)
        if code != TBO_STATUS_OK:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, description or "TBO /Cancel failed")
        return {"confirmationNumber": data.get("ConfirmationNumber", confirmation_number), "status": "cancelled"}

    async def city_list(self, country_code: str) -> list[dict]:
        data = await self._post("/CityList", {"CountryCode": country_code.upper()})
        cities = data.get("CityList") or []
        if not isinstance(cities, list):
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, "TBO /CityList CityList is not a list")
        return [c for c in cities if isinstance(c, dict) and c.get("Code") and c.get("Name")]

    async def hotels_by_city(self, city_code: str, detailed: bool = True) -> list[dict]:
        data = await self._post("/TBOHotelCodeList", {"CityCode": str(city_code), "IsDetailedResponse": detailed})
        hotels = data.get("Hotels") or []
        if not isinstance(hotels, list):
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, "TBO /TBOHotelCodeList Hotels is not a list")
        return [h for h in hotels if isinstance(h, dict) and h.get("HotelCode")]

    async def hotel_details(self, hotel_code: str, language: str = "EN") -> dict | None:
        data = await self._post("/HotelDetails", {"Hotelcodes": hotel_code, "Language": language})
        details = data.get("HotelDetails") or []
        if not isinstance(details, list) or not details:
            return None
        return details[0]

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


tbo_client = TBOClient()
