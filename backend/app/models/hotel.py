import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Float, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Hotel(Base):
    __tablename__ = "hotels"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    city: Mapped[str | None] = mapped_column(String(100))
    address: Mapped[str | None] = mapped_column(String(500))
    star_rating: Mapped[int | None] = mapped_column(Integer)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    description: Mapped[str | None] = mapped_column(Text)
    amenities: Mapped[list | None] = mapped_column(JSONB)
    base_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))  # static per-night rate
    currency: Mapped[str] = mapped_column(String(3), default="SAR")

    # TBO link
    tbo_hotel_code: Mapped[str | None] = mapped_column(String(50), index=True)
    tbo_hotel_name: Mapped[str | None] = mapped_column(String(300))
    tbo_city_code: Mapped[str | None] = mapped_column(String(50))
    tbo_country_code: Mapped[str | None] = mapped_column(String(2))
    tbo_linked: Mapped[bool] = mapped_column(Boolean, default=False)
    live_pricing: Mapped[bool] = mapped_column(Boolean, default=False)
    sync_status: Mapped[str] = mapped_column(String(20), default="not_linked")  # synced | pending | failed | not_linked
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_sync_error: Mapped[str | None] = mapped_column(Text)
    synced_fields: Mapped[list | None] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
