from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings


class RateConfigBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    effective_from: datetime
    description: Optional[str] = None

    base_rate: Decimal = Field(ge=0)
    distance_rate_per_km: Decimal = Field(ge=0)
    weight_rate_per_unit: Decimal = Field(ge=0)
    special_handling_rate: Decimal = Field(ge=0)

    fuel_surcharge_pct: Decimal = Field(default=Decimal("0"), ge=0)
    peak_hour_surcharge_pct: Decimal = Field(default=Decimal("0"), ge=0)
    weekend_surcharge_pct: Decimal = Field(default=Decimal("0"), ge=0)
    holiday_surcharge_pct: Decimal = Field(default=Decimal("0"), ge=0)

    driver_overtime_rate_per_hour: Decimal = Field(default=Decimal("0"), ge=0)
    standard_hours: Decimal = Field(
        default_factory=lambda: Decimal(str(settings.DEFAULT_STANDARD_HOURS)), ge=0
    )
    insurance_rate_pct: Decimal = Field(default=Decimal("0"), ge=0)
    default_toll_fee: Decimal = Field(default=Decimal("0"), ge=0)
    default_parking_fee: Decimal = Field(default=Decimal("0"), ge=0)

    peak_hours: List[List[int]] = Field(
        default_factory=lambda: [list(r) for r in settings.DEFAULT_PEAK_HOURS]
    )
    holidays: List[date] = Field(default_factory=list)

    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, max_length=10)
    decimal_places: int = Field(
        default_factory=lambda: settings.DEFAULT_DECIMAL_PLACES, ge=0, le=4
    )

    @field_validator("peak_hours")
    @classmethod
    def _check_peak_hours(cls, value: List[List[int]]) -> List[List[int]]:
        for window in value:
            if len(window) != 2:
                raise ValueError("each peak hour range must be [start_hour, end_hour]")
            start, end = window
            if not (0 <= start < end <= 24):
                raise ValueError(f"invalid peak hour range {window}")
        return value


class RateConfigCreate(RateConfigBase):
    model_config = ConfigDict(extra="forbid")


class RateConfigRead(RateConfigBase):
    """Versión publicada; es lo que consume el calculador."""

    version: int
    tenant_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class RateConfigRef(BaseModel):
    name: str
    version: int
