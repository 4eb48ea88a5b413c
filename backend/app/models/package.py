"""Travel package and its hotel stays — read-only to the pricing engine."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Package(Base):
    __tablename__ = "packages"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # days
    price_adult: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    price_child: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    price_infant: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))  # legacy single price
    currency: Mapped[str] = mapped_column(String(3), default="SAR")
    discount_type: Mapped[str] = mapped_column(String(20), default="none")
    discount_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    hotel_packages_json: Mapped[list | None] = mapped_column(JSONB)  # legacy hotel blob
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    hotel_assignments: Mapped[list["PackageHotel"]] = relationship(
        back_populates="package", order_by="PackageHotel.check_in_day"
    )


class PackageHotel(Base):
    __tablename__ = "package_hotels"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    package_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("packages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    hotel_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("hotels.id"), nullable=False
    )
    check_in_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1-based
    check_out_day: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    room_type: Mapped[str] = mapped_column(String(100), default="Standard Room")
    rooms_needed: Mapped[int] = mapped_column(Integer, default=1)
    guests_per_room: Mapped[int] = mapped_column(Integer, default=2)
    price_per_night: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    taxes: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    service_fees: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default="SAR")

    package: Mapped[Package] = relationship(back_populates="hotel_assignments")
