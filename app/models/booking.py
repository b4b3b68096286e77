from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

Money = Numeric(18, 6, asdecimal=True)


class BookingStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# Líneas del desglose en el orden en que se calculan y se muestran
COST_LINE_ITEMS = (
    "base",
    "distance_cost",
    "weight_cost",
    "special_cost",
    "fuel_surcharge",
    "peak_surcharge",
    "weekend_surcharge",
    "holiday_surcharge",
    "overtime_cost",
    "insurance_cost",
    "toll_fees",
    "parking_fees",
)


class Booking(Base):
    __tablename__ = "Bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_reference: Mapped[str] = mapped_column(String, unique=True, index=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)

    # Cliente
    customer_name: Mapped[str] = mapped_column(String)
    customer_email: Mapped[str] = mapped_column(String)
    customer_phone: Mapped[str] = mapped_column(String)
    customer_company: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Recogida / entrega (hora local de operación)
    pickup_location: Mapped[str] = mapped_column(String)
    pickup_date: Mapped[date] = mapped_column(Date)
    pickup_time: Mapped[time] = mapped_column(Time)
    delivery_location: Mapped[str] = mapped_column(String)
    delivery_date: Mapped[date] = mapped_column(Date)
    delivery_time: Mapped[time] = mapped_column(Time)

    # Carga
    cargo_description: Mapped[str] = mapped_column(String)
    cargo_weight: Mapped[Decimal] = mapped_column(Money)
    cargo_unit: Mapped[str] = mapped_column(String(16))
    special_requirements: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Entradas del presupuesto, necesarias para reproducirlo
    distance_km: Mapped[Decimal] = mapped_column(Money)
    estimated_hours: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    toll_fees_override: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    parking_fees_override: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    # Desglose (esquema fijo, una columna por línea)
    base: Mapped[Decimal] = mapped_column(Money)
    distance_cost: Mapped[Decimal] = mapped_column(Money)
    weight_cost: Mapped[Decimal] = mapped_column(Money)
    special_cost: Mapped[Decimal] = mapped_column(Money)
    fuel_surcharge: Mapped[Decimal] = mapped_column(Money)
    peak_surcharge: Mapped[Decimal] = mapped_column(Money)
    weekend_surcharge: Mapped[Decimal] = mapped_column(Money)
    holiday_surcharge: Mapped[Decimal] = mapped_column(Money)
    overtime_cost: Mapped[Decimal] = mapped_column(Money)
    insurance_cost: Mapped[Decimal] = mapped_column(Money)
    toll_fees: Mapped[Decimal] = mapped_column(Money)
    parking_fees: Mapped[Decimal] = mapped_column(Money)
    total: Mapped[Decimal] = mapped_column(Money)
    currency: Mapped[str] = mapped_column(String(10))

    rate_config_name: Mapped[str] = mapped_column(String)
    rate_config_version: Mapped[int] = mapped_column(Integer)
    quote_frozen: Mapped[bool] = mapped_column(Boolean, default=False)

    status: Mapped[str] = mapped_column(String(20), default=BookingStatus.PENDING.value, index=True)
    assigned_vehicle_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("Vehicles.vehicle_id"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Bloqueo optimista: SQLAlchemy añade "WHERE version = :old" a cada UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    history: Mapped[List["BookingStatusHistory"]] = relationship(
        back_populates="booking",
        order_by="BookingStatusHistory.id",
        lazy="selectin",
    )
    vehicle: Mapped[Optional["Vehicle"]] = relationship(lazy="joined")  # noqa: F821

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Booking ref={self.booking_reference!r} status={self.status!r}>"

    @property
    def pickup_at(self) -> datetime:
        return datetime.combine(self.pickup_date, self.pickup_time)

    @property
    def delivery_at(self) -> datetime:
        return datetime.combine(self.delivery_date, self.delivery_time)


class BookingStatusHistory(Base):
    """Historial append-only de transiciones."""

    __tablename__ = "BookingStatusHistory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("Bookings.id"), index=True)

    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20))
    actor: Mapped[str] = mapped_column(String)
    reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    booking: Mapped[Booking] = relationship(back_populates="history")


class VehicleAssignment(Base):
    __tablename__ = "VehicleAssignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("Bookings.id"), index=True)
    vehicle_id: Mapped[str] = mapped_column(ForeignKey("Vehicles.vehicle_id"), index=True)
    driver: Mapped[str] = mapped_column(String)

    window_start: Mapped[datetime] = mapped_column(DateTime)
    window_end: Mapped[datetime] = mapped_column(DateTime)

    # Peso cobrable en kg en el momento de asignar (comprobación de capacidad)
    load_kg: Mapped[float] = mapped_column(Float)

    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<VehicleAssignment booking={self.booking_id!r} "
            f"vehicle={self.vehicle_id!r} active={self.active!r}>"
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Intervalos cerrados [start, end]
        return self.window_start <= end and start <= self.window_end
