from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_tenant_id
from app.core.logging import get_logger
from app.db import get_db
from app.schemas.quote import PricingPreviewRequest, QuoteResponse
from app.schemas.rate_config import RateConfigCreate, RateConfigRead
from app.services import booking_service, rate_config_service

router = APIRouter(prefix="/rate-configs", tags=["rate-configs"])
logger = get_logger(module="rate_configs")


@router.get("/", response_model=List[RateConfigRead])
def list_rate_configs(
    name: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    objs = rate_config_service.list_configs(db=db, tenant_id=tenant_id, name=name)

    logger.info(
        "Listando tarifas",
        tenant_id=tenant_id,
        name=name,
        count=len(objs),
    )

    return objs


@router.post(
    "/",
    response_model=RateConfigRead,
    status_code=status.HTTP_201_CREATED,
)
def publish_rate_config(
    config_in: RateConfigCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    # Solo se añaden versiones: no hay PUT/PATCH/DELETE sobre tarifas
    return rate_config_service.publish_config(
        db=db,
        tenant_id=tenant_id,
        config_in=config_in,
        created_by=actor,
    )


@router.get("/active", response_model=RateConfigRead)
def get_active_rate_config(
    at: Optional[datetime] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return rate_config_service.get_active_config(
        db=db,
        tenant_id=tenant_id,
        at=at or datetime.now(),
    )


@router.get("/{name}/versions/{version}", response_model=RateConfigRead)
def get_rate_config(
    name: str,
    version: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return rate_config_service.get_config(
        db=db,
        tenant_id=tenant_id,
        name=name,
        version=version,
    )


@router.post("/preview", response_model=QuoteResponse)
def preview_quote(
    request: PricingPreviewRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    result = booking_service.preview_quote(db=db, tenant_id=tenant_id, request=request)

    logger.info(
        "Previsualización de presupuesto",
        tenant_id=tenant_id,
        rate_config=f"{result.rate_config.name}@{result.rate_config.version}",
        total=str(result.breakdown.total),
    )

    return result
