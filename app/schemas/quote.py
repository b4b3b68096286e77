from datetime import date, time
from decimal import Decimal
from typing import Annotated, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.rate_config import RateConfigRef

# Entradas que se guardan en columnas Numeric(18, 6): más decimales no se
# podrían recalcular desde lo guardado
InputDecimal = Annotated[Decimal, Field(max_digits=18, decimal_places=6)]


# ---------- Entrada del calculador ----------

class QuoteRequest(BaseModel):
    distance_km: InputDecimal
    cargo_weight: InputDecimal
    cargo_unit: str = "kg"
    has_special_requirements: bool = False

    pickup_date: date
    pickup_time: time
    delivery_date: Optional[date] = None
    delivery_time: Optional[time] = None

    # Si no viene, se deduce de recogida → entrega
    estimated_hours: Optional[InputDecimal] = None

    # Si no vienen, se usan los valores por defecto de la tarifa
    toll_fees: Optional[InputDecimal] = None
    parking_fees: Optional[InputDecimal] = None

    model_config = ConfigDict(frozen=True)


# ---------- Desglose ----------

class CostBreakdown(BaseModel):
    base: Decimal
    distance_cost: Decimal
    weight_cost: Decimal
    special_cost: Decimal
    fuel_surcharge: Decimal
    peak_surcharge: Decimal
    weekend_surcharge: Decimal
    holiday_surcharge: Decimal
    overtime_cost: Decimal
    insurance_cost: Decimal
    toll_fees: Decimal
    parking_fees: Decimal
    total: Decimal
    currency: str

    model_config = ConfigDict(frozen=True, from_attributes=True)

    def line_items(self) -> Dict[str, Decimal]:
        return self.model_dump(exclude={"total", "currency"})


class QuoteResponse(BaseModel):
    rate_config: RateConfigRef
    breakdown: CostBreakdown


class PricingPreviewRequest(QuoteRequest):
    # Sin nombre/versión → tarifa activa en el momento de la consulta
    config_name: Optional[str] = None
    config_version: Optional[int] = None


class QuoteVerification(BaseModel):
    booking_reference: str
    rate_config: RateConfigRef
    stored: CostBreakdown
    recomputed: CostBreakdown
    matches: bool
