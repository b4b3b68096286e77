"""
Asignación de vehículos a reservas.

Estas funciones NO hacen commit: escriben en la sesión del llamador, que hace
commit o rollback junto con la transición de estado. El llamador debe tener
tomado `vehicle_locks` del vehículo mientras dura la comprobación + escritura.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import (
    CapacityExceeded,
    InvalidRequestError,
    NotFound,
    SchedulingConflict,
    VehicleUnavailable,
)
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.booking import Booking, VehicleAssignment
from app.models.vehicle import Vehicle, VehicleStatus
from app.services.quote_calculator import chargeable_weight

logger = get_logger(module="assignment_service")

Window = Tuple[datetime, datetime]


def booking_window(booking: Booking) -> Window:
    return booking.pickup_at, booking.delivery_at


def lock_vehicle(db: Session, tenant_id: str, vehicle_id: str) -> Vehicle:
    # FOR UPDATE en PostgreSQL; en SQLite se ignora y manda el lock de proceso
    vehicle = db.execute(
        select(Vehicle)
        .where(Vehicle.vehicle_id == vehicle_id, Vehicle.tenant_id == tenant_id)
        .with_for_update()
    ).scalar_one_or_none()
    if vehicle is None:
        raise NotFound(f"Vehicle {vehicle_id!r} not found", vehicle_id=vehicle_id)
    return vehicle


def active_assignment(db: Session, booking_id: int) -> Optional[VehicleAssignment]:
    return db.execute(
        select(VehicleAssignment).where(
            VehicleAssignment.booking_id == booking_id,
            VehicleAssignment.active.is_(True),
        )
    ).scalar_one_or_none()


def find_conflicts(
    db: Session,
    vehicle_id: str,
    window: Window,
    exclude_booking_id: Optional[int] = None,
) -> List[VehicleAssignment]:
    start, end = window
    stmt = select(VehicleAssignment).where(
        VehicleAssignment.vehicle_id == vehicle_id,
        VehicleAssignment.active.is_(True),
        VehicleAssignment.window_start <= end,
        VehicleAssignment.window_end >= start,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(VehicleAssignment.booking_id != exclude_booking_id)
    return list(db.execute(stmt).scalars())


def assign(
    db: Session,
    booking: Booking,
    vehicle_id: str,
    window: Optional[Window] = None,
) -> VehicleAssignment:
    if window is None:
        window = booking_window(booking)
    start, end = window
    if end < start:
        raise InvalidRequestError("assignment window ends before it starts")

    if active_assignment(db, booking.id) is not None:
        raise SchedulingConflict(
            "Booking already holds an active assignment; use reassign",
            booking_reference=booking.booking_reference,
        )

    vehicle = lock_vehicle(db, booking.tenant_id, vehicle_id)
    if vehicle.status == VehicleStatus.MAINTENANCE.value:
        raise VehicleUnavailable(
            f"Vehicle {vehicle.plate_number} is under maintenance",
            vehicle_id=vehicle_id,
        )

    load = chargeable_weight(booking.cargo_weight, booking.cargo_unit)
    if vehicle.capacity_kg < float(load):
        logger.warning(
            "Capacidad insuficiente",
            booking_reference=booking.booking_reference,
            vehicle_id=vehicle_id,
            capacity_kg=vehicle.capacity_kg,
            load=str(load),
        )
        raise CapacityExceeded(
            f"Vehicle capacity {vehicle.capacity_kg} is below cargo weight {load}",
            vehicle_id=vehicle_id,
        )

    conflicts = find_conflicts(db, vehicle_id, window, exclude_booking_id=booking.id)
    if conflicts:
        logger.warning(
            "Conflicto de agenda",
            booking_reference=booking.booking_reference,
            vehicle_id=vehicle_id,
            conflicting_bookings=[c.booking_id for c in conflicts],
        )
        raise SchedulingConflict(
            "Vehicle already holds an overlapping assignment",
            vehicle_id=vehicle_id,
        )

    assignment = VehicleAssignment(
        booking_id=booking.id,
        vehicle_id=vehicle_id,
        driver=vehicle.driver,
        window_start=start,
        window_end=end,
        load_kg=float(load),
        active=True,
        assigned_at=utcnow(),
    )
    db.add(assignment)
    booking.vehicle = vehicle
    db.flush()

    logger.info(
        "Vehículo asignado",
        booking_reference=booking.booking_reference,
        vehicle_id=vehicle_id,
        window_start=start.isoformat(),
        window_end=end.isoformat(),
    )
    return assignment


def release(
    db: Session,
    booking: Booking,
    keep_vehicle: bool = False,
) -> Optional[VehicleAssignment]:
    """
    Libera la asignación activa. Sin asignación activa no hace nada.
    keep_vehicle=True deja el vehículo en la reserva (viaje completado).
    """
    assignment = active_assignment(db, booking.id)
    if assignment is None:
        return None

    assignment.active = False
    assignment.released_at = utcnow()
    if not keep_vehicle:
        booking.vehicle = None
    db.flush()

    logger.info(
        "Asignación liberada",
        booking_reference=booking.booking_reference,
        vehicle_id=assignment.vehicle_id,
    )
    return assignment


def reassign(
    db: Session,
    booking: Booking,
    vehicle_id: str,
    window: Optional[Window] = None,
) -> VehicleAssignment:
    # Liberar + asignar en la misma transacción: si assign falla, el rollback
    # del llamador deja la asignación anterior intacta.
    release(db, booking)
    return assign(db, booking, vehicle_id, window)
