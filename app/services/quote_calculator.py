"""
Calculador de presupuestos de transporte.

Función pura: no toca la BD, no lee el reloj, no loguea. Cada línea se calcula
de forma independiente sobre las entradas y la tarifa; el total es la suma
exacta de las líneas redondeada una sola vez (half-up) a los decimales de la
moneda de la tarifa.
"""
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.core.exceptions import InvalidRequestError, UnsupportedUnitError
from app.schemas.quote import CostBreakdown, QuoteRequest
from app.schemas.rate_config import RateConfigRead

ZERO = Decimal("0")

# Unidades de masa → factor a kg. El resto se cobra por unidad tal cual.
MASS_UNITS_TO_KG = {
    "kg": Decimal("1"),
    "tons": Decimal("1000"),
}
COUNT_UNITS = ("pieces", "pallets", "boxes", "liters")
SUPPORTED_UNITS = tuple(MASS_UNITS_TO_KG) + COUNT_UNITS


def chargeable_weight(weight: Decimal, unit: str) -> Decimal:
    """Cantidad cobrable: kg para unidades de masa, cantidad bruta para el resto."""
    normalized = (unit or "").strip().lower()
    if normalized in MASS_UNITS_TO_KG:
        return weight * MASS_UNITS_TO_KG[normalized]
    if normalized in COUNT_UNITS:
        return weight
    raise UnsupportedUnitError(unit)


def is_peak_hour(pickup_time: time, config: RateConfigRead) -> bool:
    return any(start <= pickup_time.hour < end for start, end in config.peak_hours)


def is_weekend(pickup_date: date) -> bool:
    return pickup_date.weekday() >= 5  # sábado=5, domingo=6


def is_holiday(pickup_date: date, config: RateConfigRead) -> bool:
    return pickup_date in set(config.holidays)


def estimate_hours(request: QuoteRequest) -> Decimal:
    if request.estimated_hours is not None:
        return request.estimated_hours
    if request.delivery_date is None or request.delivery_time is None:
        return ZERO

    pickup_at = datetime.combine(request.pickup_date, request.pickup_time)
    delivery_at = datetime.combine(request.delivery_date, request.delivery_time)
    seconds = int((delivery_at - pickup_at).total_seconds())
    return Decimal(seconds) / Decimal(3600)


def _validate(request: QuoteRequest) -> None:
    if request.distance_km < 0:
        raise InvalidRequestError("distance_km must not be negative", distance_km=str(request.distance_km))
    if request.cargo_weight < 0:
        raise InvalidRequestError("cargo_weight must not be negative", cargo_weight=str(request.cargo_weight))
    for field in ("estimated_hours", "toll_fees", "parking_fees"):
        value: Optional[Decimal] = getattr(request, field)
        if value is not None and value < 0:
            raise InvalidRequestError(f"{field} must not be negative", **{field: str(value)})

    if request.delivery_date is not None and request.delivery_time is not None:
        pickup_at = datetime.combine(request.pickup_date, request.pickup_time)
        delivery_at = datetime.combine(request.delivery_date, request.delivery_time)
        if delivery_at < pickup_at:
            raise InvalidRequestError("delivery must not be before pickup")


def round_money(amount: Decimal, decimal_places: int) -> Decimal:
    quantum = Decimal(1).scaleb(-decimal_places)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def compute_quote(request: QuoteRequest, config: RateConfigRead) -> CostBreakdown:
    _validate(request)
    weight = chargeable_weight(request.cargo_weight, request.cargo_unit)

    base = config.base_rate
    distance_cost = request.distance_km * config.distance_rate_per_km
    weight_cost = weight * config.weight_rate_per_unit
    special_cost = config.special_handling_rate if request.has_special_requirements else ZERO

    # Los recargos de combustible/punta/fin de semana/festivo van sobre base + distancia
    # y se suman entre sí: no son excluyentes.
    linehaul = base + distance_cost
    fuel_surcharge = linehaul * config.fuel_surcharge_pct
    peak_surcharge = (
        linehaul * config.peak_hour_surcharge_pct
        if is_peak_hour(request.pickup_time, config)
        else ZERO
    )
    weekend_surcharge = (
        linehaul * config.weekend_surcharge_pct
        if is_weekend(request.pickup_date)
        else ZERO
    )
    holiday_surcharge = (
        linehaul * config.holiday_surcharge_pct
        if is_holiday(request.pickup_date, config)
        else ZERO
    )

    extra_hours = max(ZERO, estimate_hours(request) - config.standard_hours)
    overtime_cost = extra_hours * config.driver_overtime_rate_per_hour

    insurance_cost = (base + distance_cost + weight_cost) * config.insurance_rate_pct

    toll_fees = request.toll_fees if request.toll_fees is not None else config.default_toll_fee
    parking_fees = (
        request.parking_fees if request.parking_fees is not None else config.default_parking_fee
    )

    subtotal = (
        base
        + distance_cost
        + weight_cost
        + special_cost
        + fuel_surcharge
        + peak_surcharge
        + weekend_surcharge
        + holiday_surcharge
        + overtime_cost
        + insurance_cost
        + toll_fees
        + parking_fees
    )

    return CostBreakdown(
        base=base,
        distance_cost=distance_cost,
        weight_cost=weight_cost,
        special_cost=special_cost,
        fuel_surcharge=fuel_surcharge,
        peak_surcharge=peak_surcharge,
        weekend_surcharge=weekend_surcharge,
        holiday_surcharge=holiday_surcharge,
        overtime_cost=overtime_cost,
        insurance_cost=insurance_cost,
        toll_fees=toll_fees,
        parking_fees=parking_fees,
        total=round_money(subtotal, config.decimal_places),
        currency=config.currency,
    )
