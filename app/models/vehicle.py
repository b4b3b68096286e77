from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Float, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class VehicleStatus(str, Enum):
    AVAILABLE = "Available"
    IN_TRANSIT = "In Transit"
    MAINTENANCE = "Maintenance"


class Vehicle(Base):
    __tablename__ = "Vehicles"
    __table_args__ = (
        UniqueConstraint("tenant_id", "plate_number", name="uq_vehicle_plate"),
    )

    vehicle_id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)

    plate_number: Mapped[str] = mapped_column(String)
    model: Mapped[str] = mapped_column(String)
    capacity_kg: Mapped[float] = mapped_column(Float)

    driver: Mapped[str] = mapped_column(String)
    driver_contact: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # "Available" | "In Transit" | "Maintenance"
    status: Mapped[str] = mapped_column(String, default=VehicleStatus.AVAILABLE.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Vehicle id={self.vehicle_id!r} plate={self.plate_number!r}>"

    @property
    def capacity_tons(self) -> float:
        return self.capacity_kg / 1000.0
