from datetime import date

from pydantic import BaseModel, Field

from app.services.pricing.types import DateRange, GuestDetails, GuestName, TravelerCount


class TravelersBody(BaseModel):
    adults: int = 2
    children: int = 0
    infants: int = 0

    def to_domain(self) -> TravelerCount:
        return TravelerCount(adults=self.adults, children=self.children, infants=self.infants)


class DateRangeBody(BaseModel):
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")

    model_config = {"populate_by_name": True}

    def to_domain(self) -> DateRange:
        return DateRange(start_date=self.start_date, end_date=self.end_date)


class PricingRequest(BaseModel):
    travelers: TravelersBody = Field(default_factory=TravelersBody)
    date_range: DateRangeBody | None = Field(default=None, alias="dateRange")
    currency: str | None = None

    model_config = {"populate_by_name": True}

    def domain_dates(self) -> DateRange | None:
        return self.date_range.to_domain() if self.date_range else None


class UpdateTravelersRequest(PricingRequest):
    include_hotels: bool = Field(default=False, alias="includeHotels")


class CompareRequest(BaseModel):
    configurations: list[TravelersBody]
    date_range: DateRangeBody | None = Field(default=None, alias="dateRange")
    currency: str | None = None

    model_config = {"populate_by_name": True}


class GuestBody(BaseModel):
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    title: str = "Mr"
    type: str = "Adult"

    model_config = {"populate_by_name": True}


class PrebookRequest(BaseModel):
    hotel_id: str = Field(alias="hotelId")
    booking_code: str = Field(alias="bookingCode")
    expected_total: float | None = Field(default=None, alias="expectedTotal")

    model_config = {"populate_by_name": True}


class BookRequest(BaseModel):
    hotel_id: str = Field(alias="hotelId")
    booking_code: str = Field(alias="bookingCode")
    reference: str
    rooms: list[list[GuestBody]]
    email: str
    phone: str
    total_fare: float | None = Field(default=None, alias="totalFare")

    model_config = {"populate_by_name": True}

    def guest_details(self) -> GuestDetails:
        return GuestDetails(
            rooms=tuple(
                tuple(
                    GuestName(first_name=g.first_name, last_name=g.last_name, title=g.title, guest_type=g.type)
                    for g in room
                )
                for room in self.rooms
            ),
            email=self.email,
            phone=self.phone,
        )
