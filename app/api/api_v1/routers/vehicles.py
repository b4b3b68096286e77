from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_id
from app.core.logging import get_logger
from app.db import get_db
from app.schemas.vehicle import (
    VehicleCreate,
    VehicleRead,
    VehicleUpdate,
)
from app.services import vehicle_service

router = APIRouter(prefix="/vehicles", tags=["vehicles"])
logger = get_logger(module="vehicles")


@router.get("/", response_model=List[VehicleRead])
def list_vehicles(
    status_filter: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    objs = vehicle_service.list_vehicles(
        db=db,
        tenant_id=tenant_id,
        status=status_filter,
        skip=skip,
        limit=limit,
    )

    logger.info(
        "Listando vehículos",
        tenant_id=tenant_id,
        skip=skip,
        limit=limit,
        count=len(objs),
    )

    return objs


@router.get("/{vehicle_id}", response_model=VehicleRead)
def get_vehicle(
    vehicle_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    obj = vehicle_service.get_vehicle(
        db=db,
        tenant_id=tenant_id,
        vehicle_id=vehicle_id,
    )

    if not obj:
        logger.warning(
            "Vehículo no encontrado",
            vehicle_id=vehicle_id,
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Vehicle not found",
        )

    return obj


@router.post(
    "/",
    response_model=VehicleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_vehicle(
    vehicle_in: VehicleCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    obj = vehicle_service.create_vehicle(
        db=db,
        tenant_id=tenant_id,
        vehicle_in=vehicle_in,
    )

    logger.info(
        "Vehículo creado",
        vehicle_id=obj.vehicle_id,
        capacity_kg=obj.capacity_kg,
    )

    return obj


@router.patch("/{vehicle_id}", response_model=VehicleRead)
def update_vehicle(
    vehicle_id: str,
    vehicle_in: VehicleUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    obj = vehicle_service.update_vehicle(
        db=db,
        tenant_id=tenant_id,
        vehicle_id=vehicle_id,
        vehicle_in=vehicle_in,
    )

    if not obj:
        logger.warning(
            "Intento de actualización de vehículo inexistente",
            vehicle_id=vehicle_id,
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Vehicle not found",
        )

    return obj
