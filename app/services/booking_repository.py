import base64
import secrets
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFound
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.booking import Booking, BookingStatus, BookingStatusHistory
from app.schemas.booking import BookingStats

logger = get_logger(module="booking_repository")

REFERENCE_ATTEMPTS = 5


def _random_suffix() -> str:
    # 5 bytes → 8 caracteres base32 sin relleno
    return base64.b32encode(secrets.token_bytes(5)).decode("ascii")


def reference_exists(db: Session, reference: str) -> bool:
    # Sin filtro de tenant: la referencia es única globalmente
    return (
        db.execute(
            select(Booking.id).where(Booking.booking_reference == reference)
        ).first()
        is not None
    )


def generate_reference(db: Session) -> str:
    """FB-YYYYMMDD-XXXXXXXX. Las reservas nunca se borran, así que nunca se reutiliza."""
    day = utcnow().strftime("%Y%m%d")
    for _ in range(REFERENCE_ATTEMPTS):
        reference = f"{settings.BOOKING_REFERENCE_PREFIX}-{day}-{_random_suffix()}"
        if not reference_exists(db, reference):
            return reference
        logger.warning("Colisión de referencia de reserva", reference=reference)
    raise ConflictError("Could not allocate a unique booking reference")


def find_by_reference(
    db: Session,
    tenant_id: str,
    reference: str,
    *,
    refresh: bool = False,
) -> Booking:
    stmt = select(Booking).where(
        Booking.booking_reference == reference,
        Booking.tenant_id == tenant_id,
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)

    obj = db.execute(stmt).scalar_one_or_none()
    if obj is None:
        # Mismo error para "no existe" y "es de otro tenant"
        raise NotFound(f"Booking {reference!r} not found", booking_reference=reference)
    return obj


def list_bookings(
    db: Session,
    tenant_id: str,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Booking]:
    stmt = select(Booking).where(Booking.tenant_id == tenant_id)
    if status is not None:
        stmt = stmt.where(Booking.status == status)
    stmt = stmt.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(skip).limit(limit)
    return list(db.execute(stmt).scalars())


def list_due_for_start(db: Session, tenant_id: Optional[str] = None) -> List[Booking]:
    stmt = select(Booking).where(Booking.status == BookingStatus.CONFIRMED.value)
    if tenant_id is not None:
        stmt = stmt.where(Booking.tenant_id == tenant_id)
    return list(db.execute(stmt.order_by(Booking.pickup_date, Booking.pickup_time)).scalars())


def get_history(db: Session, booking: Booking) -> List[BookingStatusHistory]:
    return list(
        db.execute(
            select(BookingStatusHistory)
            .where(BookingStatusHistory.booking_id == booking.id)
            .order_by(BookingStatusHistory.id)
        ).scalars()
    )


def booking_stats(db: Session, tenant_id: str) -> BookingStats:
    rows = db.execute(
        select(Booking.status, func.count(Booking.id))
        .where(Booking.tenant_id == tenant_id)
        .group_by(Booking.status)
    ).all()
    by_status = {status.value: 0 for status in BookingStatus}
    for status, count in rows:
        by_status[status] = count

    # Suma en Python: SQLite devuelve float en SUM sobre Numeric
    quoted: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    totals = db.execute(
        select(Booking.currency, Booking.total).where(
            Booking.tenant_id == tenant_id,
            Booking.status != BookingStatus.CANCELLED.value,
        )
    ).all()
    for currency, total in totals:
        quoted[currency] += total

    return BookingStats(
        total_bookings=sum(by_status.values()),
        by_status=by_status,
        quoted_value=dict(quoted),
    )
