from pydantic import BaseModel, Field

from app.services.hotel_sync import TBOHotelCandidate


class CoordinatesBody(BaseModel):
    latitude: float
    longitude: float


class LinkHotelRequest(BaseModel):
    hotel_id: str = Field(alias="hotelId")
    tbo_hotel_code: str = Field(alias="tboHotelCode", min_length=1)
    name: str
    city_code: str | None = Field(default=None, alias="cityCode")
    country_code: str | None = Field(default=None, alias="countryCode")
    star_rating: int | None = Field(default=None, alias="starRating")
    address: str | None = None
    coordinates: CoordinatesBody | None = None

    model_config = {"populate_by_name": True}

    def to_candidate(self) -> TBOHotelCandidate:
        return TBOHotelCandidate(
            tbo_hotel_code=self.tbo_hotel_code,
            name=self.name,
            city_code=self.city_code,
            country_code=self.country_code,
            star_rating=self.star_rating,
            address=self.address,
            coordinates=(self.coordinates.latitude, self.coordinates.longitude) if self.coordinates else None,
        )


class SyncHotelRequest(BaseModel):
    fields_to_sync: list[str] = Field(default_factory=list, alias="fieldsToSync")

    model_config = {"populate_by_name": True}
