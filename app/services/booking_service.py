"""
Gestor del ciclo de vida de las reservas.

Es el único que escribe el estado de una reserva. Cada operación:
  1. toma el lock de la reserva (y el del vehículo si toca asignaciones),
  2. recarga la reserva y comprueba la versión esperada,
  3. valida la transición y aplica efectos en la sesión,
  4. hace commit (o rollback completo si algo falla),
  5. publica el evento de dominio, ya fuera de la transacción.
"""
from contextlib import ExitStack
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    ConflictError,
    FreightError,
    IllegalTransitionError,
    InvalidRequestError,
)
from app.core.locks import booking_locks, vehicle_locks
from app.core.logging import get_logger
from app.models.base import as_local_naive, utcnow
from app.models.booking import COST_LINE_ITEMS, Booking, BookingStatusHistory
from app.models.rate_config import RateConfig
from app.models.vehicle import VehicleStatus
from app.schemas.booking import BookingCreate, BookingUpdate
from app.schemas.quote import (
    CostBreakdown,
    PricingPreviewRequest,
    QuoteRequest,
    QuoteResponse,
    QuoteVerification,
)
from app.schemas.rate_config import RateConfigRef
from app.services import assignment_service, booking_repository, rate_config_service
from app.services.booking_state_machine import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    INITIAL_STATE,
    IN_PROGRESS,
    PENDING,
    is_terminal,
    validate_transition,
)
from app.services.events import BookingStatusChanged, event_bus
from app.services.quote_calculator import compute_quote

logger = get_logger(module="booking_service")

# Precisión de almacenamiento de las líneas del desglose (Numeric(18, 6))
STORAGE_QUANTUM = Decimal("0.000001")

Effect = Callable[[Booking, ExitStack], None]


# ---------- helpers internos ----------

def _local_now() -> datetime:
    # Recogidas y effective_from se expresan en hora local de operación
    return datetime.now()


def _resolve_now(now: Optional[datetime]) -> datetime:
    return as_local_naive(now) if now is not None else _local_now()


def _quote_request_for(booking: Booking) -> QuoteRequest:
    """Reconstruye la entrada del calculador a partir de lo guardado en la reserva."""
    return QuoteRequest(
        distance_km=booking.distance_km,
        cargo_weight=booking.cargo_weight,
        cargo_unit=booking.cargo_unit,
        has_special_requirements=bool(booking.special_requirements),
        pickup_date=booking.pickup_date,
        pickup_time=booking.pickup_time,
        delivery_date=booking.delivery_date,
        delivery_time=booking.delivery_time,
        estimated_hours=booking.estimated_hours,
        toll_fees=booking.toll_fees_override,
        parking_fees=booking.parking_fees_override,
    )


def _apply_quote(booking: Booking, breakdown: CostBreakdown, config: RateConfig) -> None:
    # Las líneas se guardan a la precisión de la columna; el total ya va redondeado
    for item in COST_LINE_ITEMS:
        setattr(booking, item, getattr(breakdown, item).quantize(STORAGE_QUANTUM))
    booking.total = breakdown.total
    booking.currency = breakdown.currency
    booking.rate_config_name = config.name
    booking.rate_config_version = config.version


def _quote(db: Session, booking: Booking, at: datetime) -> CostBreakdown:
    config = rate_config_service.get_active_config(db, booking.tenant_id, at)
    breakdown = compute_quote(_quote_request_for(booking), rate_config_service.as_read(config))
    _apply_quote(booking, breakdown, config)
    return breakdown


def _check_version(booking: Booking, expected_version: Optional[int]) -> None:
    if expected_version is not None and booking.version != expected_version:
        raise ConflictError(
            "Booking was modified by another request",
            booking_reference=booking.booking_reference,
            expected_version=expected_version,
            current_version=booking.version,
        )


def _record(
    booking: Booking,
    from_status: Optional[str],
    to_status: str,
    actor: str,
    reason: Optional[str] = None,
) -> BookingStatusHistory:
    now = utcnow()
    entry = BookingStatusHistory(
        from_status=from_status,
        to_status=to_status,
        actor=actor,
        reason=reason,
        created_at=now,
    )
    booking.history.append(entry)
    booking.status = to_status
    booking.updated_at = now
    return entry


def _commit(db: Session, booking: Booking) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConflictError(
            "Booking was modified concurrently",
            booking_reference=booking.booking_reference,
        ) from exc
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            "Booking write violated a uniqueness constraint",
            booking_reference=booking.booking_reference,
        ) from exc


def _publish(booking: Booking, entry: BookingStatusHistory) -> None:
    event_bus.publish(
        BookingStatusChanged(
            booking_reference=booking.booking_reference,
            old_status=entry.from_status,
            new_status=entry.to_status,
            timestamp=entry.created_at,
            tenant_id=booking.tenant_id,
        )
    )


def _hold_vehicles(stack: ExitStack, *vehicle_ids: Optional[str]) -> None:
    # Orden fijo para no cruzar locks entre dos peticiones
    for vehicle_id in sorted({v for v in vehicle_ids if v}):
        stack.enter_context(vehicle_locks.acquire(vehicle_id))


def _run(
    db: Session,
    tenant_id: str,
    reference: str,
    operation: str,
    expected_version: Optional[int],
    body: Callable[[Booking, ExitStack], Optional[BookingStatusHistory]],
) -> Booking:
    with booking_locks.acquire(reference):
        with ExitStack() as stack:
            try:
                booking = booking_repository.find_by_reference(
                    db, tenant_id, reference, refresh=True
                )
                _check_version(booking, expected_version)
                entry = body(booking, stack)
                _commit(db, booking)
            except FreightError as exc:
                db.rollback()
                logger.warning(
                    "Operación sobre reserva rechazada",
                    operation=operation,
                    booking_reference=reference,
                    error=type(exc).__name__,
                    detail=exc.message,
                )
                raise
            except Exception:
                db.rollback()
                logger.exception(
                    "Error inesperado en operación sobre reserva",
                    operation=operation,
                    booking_reference=reference,
                )
                raise

    if entry is not None:
        logger.info(
            "Transición de reserva",
            booking_reference=reference,
            from_status=entry.from_status,
            to_status=entry.to_status,
            actor=entry.actor,
        )
        _publish(booking, entry)
    return booking


def _transition(
    db: Session,
    tenant_id: str,
    reference: str,
    target: str,
    *,
    actor: str,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
    effect: Optional[Effect] = None,
) -> Booking:
    def body(booking: Booking, stack: ExitStack) -> BookingStatusHistory:
        current = booking.status
        validate_transition(current, target)
        if effect is not None:
            effect(booking, stack)
        return _record(booking, current, target, actor, reason)

    return _run(db, tenant_id, reference, f"transition:{target}", expected_version, body)


# ---------- creación ----------

def create_booking(
    db: Session,
    tenant_id: str,
    booking_in: BookingCreate,
    actor: str = "customer",
    now: Optional[datetime] = None,
) -> Booking:
    now = _resolve_now(now)

    try:
        config = rate_config_service.get_active_config(db, tenant_id, now)
        booking = Booking(
            booking_reference=booking_repository.generate_reference(db),
            tenant_id=tenant_id,
            customer_name=booking_in.customer.name,
            customer_email=booking_in.customer.email,
            customer_phone=booking_in.customer.phone,
            customer_company=booking_in.customer.company,
            pickup_location=booking_in.pickup.location,
            pickup_date=booking_in.pickup.date,
            pickup_time=booking_in.pickup.time,
            delivery_location=booking_in.delivery.location,
            delivery_date=booking_in.delivery.date,
            delivery_time=booking_in.delivery.time,
            cargo_description=booking_in.cargo.description,
            cargo_weight=booking_in.cargo.weight,
            cargo_unit=booking_in.cargo.unit,
            special_requirements=booking_in.cargo.special_requirements,
            distance_km=booking_in.distance_km,
            estimated_hours=booking_in.estimated_hours,
            toll_fees_override=booking_in.toll_fees,
            parking_fees_override=booking_in.parking_fees,
            notes=booking_in.notes,
            quote_frozen=False,
            created_at=utcnow(),
        )
        breakdown = compute_quote(
            _quote_request_for(booking), rate_config_service.as_read(config)
        )
        _apply_quote(booking, breakdown, config)

        entry = _record(booking, None, INITIAL_STATE, actor)
        db.add(booking)
        db.flush()

        with ExitStack() as stack:
            if booking_in.vehicle_id:
                _hold_vehicles(stack, booking_in.vehicle_id)
                assignment_service.assign(db, booking, booking_in.vehicle_id)
            _commit(db, booking)
    except FreightError as exc:
        db.rollback()
        logger.warning(
            "Creación de reserva rechazada",
            tenant_id=tenant_id,
            error=type(exc).__name__,
            detail=exc.message,
        )
        raise
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Reserva creada",
        booking_reference=booking.booking_reference,
        tenant_id=tenant_id,
        rate_config=f"{booking.rate_config_name}@{booking.rate_config_version}",
        total=str(booking.total),
        currency=booking.currency,
    )
    _publish(booking, entry)
    return booking


def get_booking(db: Session, tenant_id: str, reference: str) -> Booking:
    return booking_repository.find_by_reference(db, tenant_id, reference)


# ---------- transiciones ----------

def confirm(
    db: Session,
    tenant_id: str,
    reference: str,
    *,
    actor: str,
    vehicle_id: Optional[str] = None,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Booking:
    """Pending → Confirmed. Necesita vehículo asignado; congela el presupuesto."""

    def effect(booking: Booking, stack: ExitStack) -> None:
        if vehicle_id:
            _hold_vehicles(stack, booking.assigned_vehicle_id, vehicle_id)
            if assignment_service.active_assignment(db, booking.id) is not None:
                assignment_service.reassign(db, booking, vehicle_id)
            else:
                assignment_service.assign(db, booking, vehicle_id)
        elif assignment_service.active_assignment(db, booking.id) is None:
            raise IllegalTransitionError(booking.status, CONFIRMED, "no vehicle assigned")

        booking.quote_frozen = True
        booking.confirmed_at = utcnow()

    return _transition(
        db, tenant_id, reference, CONFIRMED,
        actor=actor, reason=reason, expected_version=expected_version, effect=effect,
    )


def start(
    db: Session,
    tenant_id: str,
    reference: str,
    *,
    actor: str,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Booking:
    """Confirmed → InProgress, solo a partir de la hora de recogida."""
    now = _resolve_now(now)

    def effect(booking: Booking, stack: ExitStack) -> None:
        if now < booking.pickup_at:
            raise IllegalTransitionError(booking.status, IN_PROGRESS, "pickup time not reached")
        booking.started_at = utcnow()
        if booking.vehicle is not None:
            booking.vehicle.status = VehicleStatus.IN_TRANSIT.value

    return _transition(
        db, tenant_id, reference, IN_PROGRESS,
        actor=actor, reason=reason, expected_version=expected_version, effect=effect,
    )


def complete(
    db: Session,
    tenant_id: str,
    reference: str,
    *,
    actor: str,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Booking:
    def effect(booking: Booking, stack: ExitStack) -> None:
        booking.completed_at = utcnow()
        vehicle = booking.vehicle
        if vehicle is not None:
            _hold_vehicles(stack, vehicle.vehicle_id)
            # La reserva conserva el vehículo para el tracking; la ventana queda libre
            assignment_service.release(db, booking, keep_vehicle=True)
            if vehicle.status == VehicleStatus.IN_TRANSIT.value:
                vehicle.status = VehicleStatus.AVAILABLE.value

    return _transition(
        db, tenant_id, reference, COMPLETED,
        actor=actor, reason=reason, expected_version=expected_version, effect=effect,
    )


def cancel(
    db: Session,
    tenant_id: str,
    reference: str,
    *,
    actor: str,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Booking:
    """{Pending, Confirmed} → Cancelled. Libera cualquier asignación."""

    def effect(booking: Booking, stack: ExitStack) -> None:
        _hold_vehicles(stack, booking.assigned_vehicle_id)
        assignment_service.release(db, booking)
        booking.cancelled_at = utcnow()

    return _transition(
        db, tenant_id, reference, CANCELLED,
        actor=actor, reason=reason, expected_version=expected_version, effect=effect,
    )


# ---------- operaciones sin cambio de estado ----------

def assign_vehicle(
    db: Session,
    tenant_id: str,
    reference: str,
    vehicle_id: str,
    *,
    expected_version: Optional[int] = None,
) -> Booking:
    """Asignación tentativa (Pending) o reasignación (Confirmed). No recalcula."""

    def body(booking: Booking, stack: ExitStack) -> None:
        if booking.status not in (PENDING, CONFIRMED):
            raise IllegalTransitionError(
                booking.status, booking.status, "vehicle can only change before transit"
            )
        _hold_vehicles(stack, booking.assigned_vehicle_id, vehicle_id)
        assignment_service.reassign(db, booking, vehicle_id)
        booking.updated_at = utcnow()
        return None

    return _run(db, tenant_id, reference, "assign_vehicle", expected_version, body)


def requote(
    db: Session,
    tenant_id: str,
    reference: str,
    *,
    now: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> Booking:
    """Recalcula con la tarifa activa ahora. Solo Pending y sin congelar."""
    now = _resolve_now(now)

    def body(booking: Booking, stack: ExitStack) -> None:
        if booking.status != PENDING or booking.quote_frozen:
            raise IllegalTransitionError(booking.status, booking.status, "quote is frozen")
        previous = booking.total
        _quote(db, booking, now)
        booking.updated_at = utcnow()
        logger.info(
            "Reserva recalculada",
            booking_reference=booking.booking_reference,
            previous_total=str(previous),
            total=str(booking.total),
            rate_config=f"{booking.rate_config_name}@{booking.rate_config_version}",
        )
        return None

    return _run(db, tenant_id, reference, "requote", expected_version, body)


TRIP_FIELDS = ("pickup", "delivery", "cargo", "distance_km", "estimated_hours", "toll_fees", "parking_fees")


def update_details(
    db: Session,
    tenant_id: str,
    reference: str,
    changes: BookingUpdate,
    *,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Notas: cualquier estado no final. Viaje/carga: solo Pending, y disparan
    el recálculo (único recálculo automático) y la revalidación del vehículo.
    """
    now = _resolve_now(now)
    data = changes.model_dump(exclude_unset=True, exclude={"expected_version"})
    trip_changes = {k: v for k, v in data.items() if k in TRIP_FIELDS}

    def body(booking: Booking, stack: ExitStack) -> None:
        if is_terminal(booking.status):
            raise IllegalTransitionError(booking.status, booking.status, "booking is closed")
        if trip_changes and (booking.status != PENDING or booking.quote_frozen):
            raise IllegalTransitionError(
                booking.status, booking.status, "trip details are frozen after confirmation"
            )

        if "notes" in data:
            booking.notes = data["notes"]

        if trip_changes:
            if changes.pickup is not None:
                booking.pickup_location = changes.pickup.location
                booking.pickup_date = changes.pickup.date
                booking.pickup_time = changes.pickup.time
            if changes.delivery is not None:
                booking.delivery_location = changes.delivery.location
                booking.delivery_date = changes.delivery.date
                booking.delivery_time = changes.delivery.time
            if changes.cargo is not None:
                booking.cargo_description = changes.cargo.description
                booking.cargo_weight = changes.cargo.weight
                booking.cargo_unit = changes.cargo.unit
                booking.special_requirements = changes.cargo.special_requirements
            if "distance_km" in trip_changes:
                if changes.distance_km is None:
                    raise InvalidRequestError("distance_km cannot be cleared")
                booking.distance_km = changes.distance_km
            if "estimated_hours" in trip_changes:
                booking.estimated_hours = changes.estimated_hours
            if "toll_fees" in trip_changes:
                booking.toll_fees_override = changes.toll_fees
            if "parking_fees" in trip_changes:
                booking.parking_fees_override = changes.parking_fees

            _quote(db, booking, now)

            # La asignación tentativa se revalida con la nueva ventana y carga
            vehicle_id = booking.assigned_vehicle_id
            if vehicle_id:
                _hold_vehicles(stack, vehicle_id)
                assignment_service.reassign(db, booking, vehicle_id)

        booking.updated_at = utcnow()
        return None

    return _run(db, tenant_id, reference, "update_details", changes.expected_version, body)


# ---------- job programado ----------

def start_due_bookings(
    db: Session,
    now: Optional[datetime] = None,
    tenant_id: Optional[str] = None,
) -> List[Booking]:
    """Pasa a InProgress las reservas Confirmed cuya hora de recogida ya pasó."""
    now = _resolve_now(now)
    started: List[Booking] = []

    due = [b for b in booking_repository.list_due_for_start(db, tenant_id) if b.pickup_at <= now]
    for booking in due:
        try:
            started.append(
                start(
                    db,
                    booking.tenant_id,
                    booking.booking_reference,
                    actor="scheduler",
                    now=now,
                    reason="pickup time reached",
                )
            )
        except (ConflictError, IllegalTransitionError) as exc:
            # Otra petición la movió antes: se ignora y seguimos
            logger.warning(
                "Reserva no iniciada por el job",
                booking_reference=booking.booking_reference,
                error=type(exc).__name__,
            )

    logger.info("Job de inicio de reservas", due=len(due), started=len(started))
    return started


# ---------- presupuestos ----------

def preview_quote(
    db: Session,
    tenant_id: str,
    request: PricingPreviewRequest,
    now: Optional[datetime] = None,
) -> QuoteResponse:
    """Presupuesto sin persistir nada."""
    if (request.config_name is None) != (request.config_version is None):
        raise InvalidRequestError("config_name and config_version must be given together")

    if request.config_name is not None:
        config = rate_config_service.get_config(
            db, tenant_id, request.config_name, request.config_version
        )
    else:
        config = rate_config_service.get_active_config(db, tenant_id, _resolve_now(now))

    quote_request = QuoteRequest(**request.model_dump(exclude={"config_name", "config_version"}))
    breakdown = compute_quote(quote_request, rate_config_service.as_read(config))
    return QuoteResponse(
        rate_config=RateConfigRef(name=config.name, version=config.version),
        breakdown=breakdown,
    )


def _storage_equal(a: CostBreakdown, b: CostBreakdown) -> bool:
    if a.total != b.total or a.currency != b.currency:
        return False
    return all(
        getattr(a, item).quantize(STORAGE_QUANTUM) == getattr(b, item).quantize(STORAGE_QUANTUM)
        for item in COST_LINE_ITEMS
    )


def verify_quote(db: Session, tenant_id: str, reference: str) -> QuoteVerification:
    """Rehace el presupuesto con la versión de tarifa registrada en la reserva."""
    booking = booking_repository.find_by_reference(db, tenant_id, reference)
    config = rate_config_service.get_config(
        db, tenant_id, booking.rate_config_name, booking.rate_config_version
    )
    recomputed = compute_quote(_quote_request_for(booking), rate_config_service.as_read(config))
    stored = CostBreakdown.model_validate(booking)
    matches = _storage_equal(stored, recomputed)

    if not matches:
        logger.error(
            "Presupuesto no reproducible",
            booking_reference=reference,
            stored_total=str(stored.total),
            recomputed_total=str(recomputed.total),
        )

    return QuoteVerification(
        booking_reference=reference,
        rate_config=RateConfigRef(name=config.name, version=config.version),
        stored=stored,
        recomputed=recomputed,
        matches=matches,
    )
