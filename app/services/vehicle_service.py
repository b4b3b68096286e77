import uuid
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError
from app.core.logging import get_logger
from app.models.vehicle import Vehicle
from app.schemas.vehicle import VehicleCreate, VehicleUpdate

logger = get_logger(module="vehicle_service")


def _commit(db: Session, tenant_id: str, plate_number: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "Matrícula duplicada",
            tenant_id=tenant_id,
            plate_number=plate_number,
        )
        raise ConflictError(
            f"Vehicle with plate {plate_number!r} already exists",
            plate_number=plate_number,
        ) from exc


def create_vehicle(
    db: Session,
    tenant_id: str,
    vehicle_in: VehicleCreate,
) -> Vehicle:
    vehicle_id = str(uuid.uuid4())

    db_obj = Vehicle(
        vehicle_id=vehicle_id,
        tenant_id=tenant_id,
        **vehicle_in.model_dump(),
    )
    db.add(db_obj)
    _commit(db, tenant_id, db_obj.plate_number)
    db.refresh(db_obj)

    logger.info(
        "Vehículo creado en servicio",
        vehicle_id=db_obj.vehicle_id,
        plate_number=db_obj.plate_number,
        capacity_kg=db_obj.capacity_kg,
    )

    return db_obj


def get_vehicle(
    db: Session,
    tenant_id: str,
    vehicle_id: str,
) -> Optional[Vehicle]:
    obj = (
        db.query(Vehicle)
        .filter(Vehicle.vehicle_id == vehicle_id, Vehicle.tenant_id == tenant_id)
        .first()
    )
    # El not found ya se loguea en el router, aquí no spameamos.
    return obj


def list_vehicles(
    db: Session,
    tenant_id: str,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Vehicle]:
    query = db.query(Vehicle).filter(Vehicle.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(Vehicle.status == status)
    return query.order_by(Vehicle.plate_number).offset(skip).limit(limit).all()


def update_vehicle(
    db: Session,
    tenant_id: str,
    vehicle_id: str,
    vehicle_in: VehicleUpdate,
) -> Optional[Vehicle]:
    db_obj = get_vehicle(db, tenant_id, vehicle_id)
    if not db_obj:
        logger.warning(
            "Intento de actualización de vehículo inexistente en servicio",
            vehicle_id=vehicle_id,
        )
        return None

    update_data = vehicle_in.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_obj, field, value)

    db.add(db_obj)
    _commit(db, tenant_id, db_obj.plate_number)
    db.refresh(db_obj)

    logger.info(
        "Vehículo actualizado en servicio",
        vehicle_id=vehicle_id,
        fields=sorted(update_data),
    )

    return db_obj
