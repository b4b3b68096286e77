from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_tenant_id
from app.core.logging import get_logger
from app.db import get_db
from app.schemas.booking import (
    AssignVehicleRequest,
    BookingCreate,
    BookingList,
    BookingRead,
    BookingStats,
    BookingUpdate,
    ConfirmRequest,
    StatusHistoryRead,
    TransitionRequest,
)
from app.schemas.quote import QuoteVerification
from app.services import booking_repository, booking_service

router = APIRouter(prefix="/bookings", tags=["bookings"])
logger = get_logger(module="bookings")


# ---------- lectura ----------

@router.get("/", response_model=BookingList)
def list_bookings(
    status_filter: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    objs = booking_repository.list_bookings(
        db=db,
        tenant_id=tenant_id,
        status=status_filter,
        skip=skip,
        limit=limit,
    )

    logger.info(
        "Listando reservas",
        tenant_id=tenant_id,
        status=status_filter,
        count=len(objs),
    )

    return BookingList(items=[BookingRead.from_model(b) for b in objs], count=len(objs))


@router.get("/stats", response_model=BookingStats)
def get_booking_stats(
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return booking_repository.booking_stats(db=db, tenant_id=tenant_id)


@router.get("/track/{reference}", response_model=BookingRead)
def track_booking(
    reference: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    # Lectura pública: sin efectos, y nunca cruza tenants
    obj = booking_repository.find_by_reference(db, tenant_id, reference)

    logger.info(
        "Consulta de seguimiento",
        booking_reference=reference,
        status=obj.status,
    )

    return BookingRead.from_model(obj)


@router.get("/{reference}/history", response_model=List[StatusHistoryRead])
def get_booking_history(
    reference: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    obj = booking_repository.find_by_reference(db, tenant_id, reference)
    return booking_repository.get_history(db, obj)


@router.get("/{reference}/quote/verify", response_model=QuoteVerification)
def verify_booking_quote(
    reference: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return booking_service.verify_quote(db=db, tenant_id=tenant_id, reference=reference)


# ---------- escritura ----------

@router.post(
    "/",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    booking_in: BookingCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    obj = booking_service.create_booking(
        db=db,
        tenant_id=tenant_id,
        booking_in=booking_in,
        actor=actor,
    )
    return BookingRead.from_model(obj)


@router.patch("/{reference}", response_model=BookingRead)
def update_booking(
    reference: str,
    changes: BookingUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    obj = booking_service.update_details(
        db=db,
        tenant_id=tenant_id,
        reference=reference,
        changes=changes,
    )
    return BookingRead.from_model(obj)


@router.post("/{reference}/confirm", response_model=BookingRead)
def confirm_booking(
    reference: str,
    payload: Optional[ConfirmRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    payload = payload or ConfirmRequest()
    obj = booking_service.confirm(
        db,
        tenant_id,
        reference,
        actor=payload.actor or actor,
        vehicle_id=payload.vehicle_id,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    return BookingRead.from_model(obj)


@router.post("/{reference}/start", response_model=BookingRead)
def start_booking(
    reference: str,
    payload: Optional[TransitionRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    payload = payload or TransitionRequest()
    obj = booking_service.start(
        db,
        tenant_id,
        reference,
        actor=payload.actor or actor,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    return BookingRead.from_model(obj)


@router.post("/{reference}/complete", response_model=BookingRead)
def complete_booking(
    reference: str,
    payload: Optional[TransitionRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    payload = payload or TransitionRequest()
    obj = booking_service.complete(
        db,
        tenant_id,
        reference,
        actor=payload.actor or actor,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    return BookingRead.from_model(obj)


@router.post("/{reference}/cancel", response_model=BookingRead)
def cancel_booking(
    reference: str,
    payload: Optional[TransitionRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    payload = payload or TransitionRequest()
    obj = booking_service.cancel(
        db,
        tenant_id,
        reference,
        actor=payload.actor or actor,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    return BookingRead.from_model(obj)


@router.post("/{reference}/requote", response_model=BookingRead)
def requote_booking(
    reference: str,
    payload: Optional[TransitionRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    payload = payload or TransitionRequest()
    obj = booking_service.requote(
        db,
        tenant_id,
        reference,
        expected_version=payload.expected_version,
    )
    return BookingRead.from_model(obj)


@router.post("/{reference}/vehicle", response_model=BookingRead)
def assign_booking_vehicle(
    reference: str,
    payload: AssignVehicleRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    obj = booking_service.assign_vehicle(
        db,
        tenant_id,
        reference,
        payload.vehicle_id,
        expected_version=payload.expected_version,
    )
    return BookingRead.from_model(obj)


@router.post("/jobs/start-due", response_model=List[BookingRead])
def run_start_due_job(
    now: Optional[datetime] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    started = booking_service.start_due_bookings(db=db, now=now, tenant_id=tenant_id)
    return [BookingRead.from_model(b) for b in started]
