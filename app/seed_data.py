from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.db import Base, SessionLocal, engine
from app.models.rate_config import RateConfig
from app.models.vehicle import Vehicle
from app.schemas.rate_config import RateConfigCreate
from app.schemas.vehicle import VehicleCreate
from app.services import rate_config_service, vehicle_service

DEMO_TENANT = "demo"


def create_tables() -> None:
    # Por si el esquema no está creado aún
    Base.metadata.create_all(bind=engine)


def seed_rate_configs(db: Session, tenant_id: str = DEMO_TENANT) -> None:
    if db.query(RateConfig).filter(RateConfig.tenant_id == tenant_id).count() > 0:
        return

    # Valores de la tarifa estándar que usaba el panel de precios
    rate_config_service.publish_config(
        db,
        tenant_id,
        RateConfigCreate(
            name="standard",
            effective_from=datetime(2024, 1, 1),
            description="Tarifa estándar",
            base_rate=Decimal("5000"),
            distance_rate_per_km=Decimal("75"),
            weight_rate_per_unit=Decimal("0.5"),
            special_handling_rate=Decimal("2000"),
            fuel_surcharge_pct=Decimal("0.15"),
            peak_hour_surcharge_pct=Decimal("0.20"),
            weekend_surcharge_pct=Decimal("0.25"),
            holiday_surcharge_pct=Decimal("0.50"),
            driver_overtime_rate_per_hour=Decimal("300"),
            insurance_rate_pct=Decimal("0.02"),
            default_toll_fee=Decimal("50"),
            default_parking_fee=Decimal("200"),
            holidays=["2024-12-25", "2025-01-01", "2025-12-25"],
        ),
        created_by="seed",
    )


def seed_vehicles(db: Session, tenant_id: str = DEMO_TENANT) -> None:
    if db.query(Vehicle).filter(Vehicle.tenant_id == tenant_id).count() > 0:
        return

    vehicles = [
        VehicleCreate(
            plate_number="ABC-1234",
            model="Isuzu Elf",
            capacity_kg=4000,
            driver="Juan Dela Cruz",
            driver_contact="+63 917 000 0001",
        ),
        VehicleCreate(
            plate_number="XYZ-5678",
            model="Hino 500",
            capacity_kg=12000,
            driver="Maria Santos",
            driver_contact="+63 917 000 0002",
        ),
    ]
    for vehicle_in in vehicles:
        vehicle_service.create_vehicle(db, tenant_id, vehicle_in)


def run(db: Session) -> None:
    seed_rate_configs(db)
    seed_vehicles(db)


if __name__ == "__main__":
    create_tables()
    session = SessionLocal()
    try:
        run(session)
    finally:
        session.close()
