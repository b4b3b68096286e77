from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConfigNotFound, ConflictError, NoConfigAvailable
from app.core.logging import get_logger
from app.models.base import as_local_naive
from app.models.rate_config import RateConfig
from app.schemas.rate_config import RateConfigCreate, RateConfigRead

logger = get_logger(module="rate_config_service")


def publish_config(
    db: Session,
    tenant_id: str,
    config_in: RateConfigCreate,
    created_by: Optional[str] = None,
) -> RateConfig:
    """
    Añade una versión nueva (max+1) de la tarifa `config_in.name`.
    Nunca actualiza filas existentes; dos publicaciones simultáneas del mismo
    nombre chocan contra la unique (tenant, name, version).
    """
    current = db.execute(
        select(func.max(RateConfig.version)).where(
            RateConfig.tenant_id == tenant_id,
            RateConfig.name == config_in.name,
        )
    ).scalar()
    next_version = (current or 0) + 1

    data = config_in.model_dump()
    data["holidays"] = [d.isoformat() for d in config_in.holidays]
    data["effective_from"] = as_local_naive(config_in.effective_from)

    db_obj = RateConfig(
        tenant_id=tenant_id,
        version=next_version,
        created_by=created_by,
        **data,
    )
    db.add(db_obj)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "Publicación de tarifa concurrente rechazada",
            tenant_id=tenant_id,
            name=config_in.name,
            version=next_version,
        )
        raise ConflictError(
            "Another version of this rate config was published concurrently",
            name=config_in.name,
        ) from exc

    db.refresh(db_obj)

    logger.info(
        "Tarifa publicada",
        tenant_id=tenant_id,
        name=db_obj.name,
        version=db_obj.version,
        effective_from=db_obj.effective_from.isoformat(),
    )

    return db_obj


def get_active_config(
    db: Session,
    tenant_id: str,
    at: datetime,
) -> RateConfig:
    at = as_local_naive(at)
    obj = db.execute(
        select(RateConfig)
        .where(
            RateConfig.tenant_id == tenant_id,
            RateConfig.effective_from <= at,
        )
        .order_by(
            RateConfig.effective_from.desc(),
            RateConfig.version.desc(),
            RateConfig.id.desc(),
        )
        .limit(1)
    ).scalar_one_or_none()

    if obj is None:
        raise NoConfigAvailable(
            "No rate config is effective at the requested time",
            tenant_id=tenant_id,
            at=at.isoformat(),
        )
    return obj


def get_config(
    db: Session,
    tenant_id: str,
    name: str,
    version: int,
) -> RateConfig:
    obj = db.execute(
        select(RateConfig).where(
            RateConfig.tenant_id == tenant_id,
            RateConfig.name == name,
            RateConfig.version == version,
        )
    ).scalar_one_or_none()

    if obj is None:
        raise ConfigNotFound(
            f"Rate config {name!r} version {version} not found",
            name=name,
            version=version,
        )
    return obj


def list_configs(
    db: Session,
    tenant_id: str,
    name: Optional[str] = None,
) -> List[RateConfig]:
    stmt = select(RateConfig).where(RateConfig.tenant_id == tenant_id)
    if name is not None:
        stmt = stmt.where(RateConfig.name == name)
    stmt = stmt.order_by(RateConfig.effective_from.desc(), RateConfig.version.desc())
    return list(db.execute(stmt).scalars())


def as_read(config: RateConfig) -> RateConfigRead:
    """Copia inmutable de la tarifa, la que recibe el calculador."""
    return RateConfigRead.model_validate(config)
