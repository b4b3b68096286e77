import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.schemas.quote import CostBreakdown, InputDecimal
from app.schemas.rate_config import RateConfigRef
from app.services.booking_state_machine import get_allowed_transitions, get_transition_action


# ---------- Bloques de la reserva ----------

class Customer(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=255)
    company: Optional[str] = Field(default=None, max_length=255)


class Stop(BaseModel):
    location: str = Field(min_length=1, max_length=1000)
    date: dt.date
    time: dt.time


class Cargo(BaseModel):
    description: str = Field(min_length=1, max_length=1000)
    weight: InputDecimal
    unit: str = "kg"  # kg | tons | pieces | pallets | boxes | liters
    special_requirements: Optional[str] = Field(default=None, max_length=1000)


# ---------- Entrada ----------

class BookingCreate(BaseModel):
    customer: Customer
    pickup: Stop
    delivery: Stop
    cargo: Cargo

    distance_km: InputDecimal
    estimated_hours: Optional[InputDecimal] = None
    toll_fees: Optional[InputDecimal] = None
    parking_fees: Optional[InputDecimal] = None

    # Asignación tentativa opcional (el truck_id del formulario de reserva)
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class BookingUpdate(BaseModel):
    """Cambios de viaje/carga solo en Pending; notes en cualquier estado no final."""

    pickup: Optional[Stop] = None
    delivery: Optional[Stop] = None
    cargo: Optional[Cargo] = None
    distance_km: Optional[InputDecimal] = None
    estimated_hours: Optional[InputDecimal] = None
    toll_fees: Optional[InputDecimal] = None
    parking_fees: Optional[InputDecimal] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class TransitionRequest(BaseModel):
    actor: Optional[str] = None
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class ConfirmRequest(TransitionRequest):
    vehicle_id: Optional[str] = None


class AssignVehicleRequest(TransitionRequest):
    vehicle_id: str


# ---------- Salida ----------

class AssignedVehicle(BaseModel):
    vehicle_id: str
    plate_number: str
    model: str
    capacity_kg: float
    capacity_tons: float
    driver: str
    driver_contact: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryRead(BaseModel):
    from_status: Optional[str]
    to_status: str
    actor: str
    reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingRead(BaseModel):
    booking_reference: str
    status: str
    customer: Customer
    pickup: Stop
    delivery: Stop
    cargo: Cargo
    distance_km: Decimal
    estimated_hours: Optional[Decimal] = None

    assigned_vehicle: Optional[AssignedVehicle] = None
    cost_breakdown: CostBreakdown
    rate_config: RateConfigRef
    quote_frozen: bool

    # Siguientes estados posibles y la acción de cada uno (botones del panel)
    allowed_transitions: List[str] = Field(default_factory=list)
    available_actions: List[str] = Field(default_factory=list)

    notes: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, booking) -> "BookingRead":
        allowed = get_allowed_transitions(booking.status)
        return cls(
            booking_reference=booking.booking_reference,
            status=booking.status,
            customer=Customer(
                name=booking.customer_name,
                email=booking.customer_email,
                phone=booking.customer_phone,
                company=booking.customer_company,
            ),
            pickup=Stop(
                location=booking.pickup_location,
                date=booking.pickup_date,
                time=booking.pickup_time,
            ),
            delivery=Stop(
                location=booking.delivery_location,
                date=booking.delivery_date,
                time=booking.delivery_time,
            ),
            cargo=Cargo(
                description=booking.cargo_description,
                weight=booking.cargo_weight,
                unit=booking.cargo_unit,
                special_requirements=booking.special_requirements,
            ),
            distance_km=booking.distance_km,
            estimated_hours=booking.estimated_hours,
            assigned_vehicle=(
                AssignedVehicle.model_validate(booking.vehicle)
                if booking.vehicle is not None
                else None
            ),
            cost_breakdown=CostBreakdown.model_validate(booking),
            rate_config=RateConfigRef(
                name=booking.rate_config_name,
                version=booking.rate_config_version,
            ),
            quote_frozen=booking.quote_frozen,
            allowed_transitions=allowed,
            available_actions=[get_transition_action(booking.status, t) for t in allowed],
            notes=booking.notes,
            version=booking.version,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            confirmed_at=booking.confirmed_at,
            started_at=booking.started_at,
            completed_at=booking.completed_at,
            cancelled_at=booking.cancelled_at,
        )


class BookingStats(BaseModel):
    total_bookings: int
    by_status: Dict[str, int]
    # Suma de totales de reservas no canceladas, por moneda
    quoted_value: Dict[str, Decimal]


class BookingList(BaseModel):
    items: List[BookingRead]
    count: int
