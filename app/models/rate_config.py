from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.exceptions import ImmutableConfigError

from .base import Base, utcnow

Money = Numeric(18, 6, asdecimal=True)


class RateConfig(Base):
    """
    Tarifa versionada. Una fila nunca se modifica ni se borra: un cambio de
    tarifa es una versión nueva con su propio effective_from.
    """

    __tablename__ = "RateConfigs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", "version", name="uq_rate_config_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)

    name: Mapped[str] = mapped_column(String)
    version: Mapped[int] = mapped_column(Integer)
    effective_from: Mapped[datetime] = mapped_column(DateTime, index=True)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    base_rate: Mapped[Decimal] = mapped_column(Money)
    distance_rate_per_km: Mapped[Decimal] = mapped_column(Money)
    weight_rate_per_unit: Mapped[Decimal] = mapped_column(Money)
    special_handling_rate: Mapped[Decimal] = mapped_column(Money)

    # Porcentajes como fracción: 0.10 = 10 %
    fuel_surcharge_pct: Mapped[Decimal] = mapped_column(Money)
    peak_hour_surcharge_pct: Mapped[Decimal] = mapped_column(Money)
    weekend_surcharge_pct: Mapped[Decimal] = mapped_column(Money)
    holiday_surcharge_pct: Mapped[Decimal] = mapped_column(Money)

    driver_overtime_rate_per_hour: Mapped[Decimal] = mapped_column(Money)
    standard_hours: Mapped[Decimal] = mapped_column(Money)
    insurance_rate_pct: Mapped[Decimal] = mapped_column(Money)
    default_toll_fee: Mapped[Decimal] = mapped_column(Money)
    default_parking_fee: Mapped[Decimal] = mapped_column(Money)

    # [[7, 9], [17, 19]] → horas punta [inicio, fin)
    peak_hours: Mapped[List[List[int]]] = mapped_column(JSON)
    # ["2025-12-25", ...]
    holidays: Mapped[List[str]] = mapped_column(JSON)

    currency: Mapped[str] = mapped_column(String(10))
    decimal_places: Mapped[int] = mapped_column(Integer)

    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<RateConfig name={self.name!r} version={self.version!r}>"


@event.listens_for(RateConfig, "before_update")
def _reject_update(mapper, connection, target: RateConfig) -> None:
    raise ImmutableConfigError(
        "Rate config versions are write-once",
        name=target.name,
        version=target.version,
    )


@event.listens_for(RateConfig, "before_delete")
def _reject_delete(mapper, connection, target: RateConfig) -> None:
    raise ImmutableConfigError(
        "Rate config versions cannot be deleted",
        name=target.name,
        version=target.version,
    )
