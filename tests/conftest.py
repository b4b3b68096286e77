# tests/conftest.py
import os
from datetime import date, datetime, time
from decimal import Decimal

import pytest

# BD en memoria antes de importar la app (app.db crea el engine al importarse)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_TO_FILE", "false")

from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: E402,F401
from app.db import Base, SessionLocal, engine  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.schemas.booking import BookingCreate, Cargo, Customer, Stop  # noqa: E402
from app.schemas.rate_config import RateConfigCreate  # noqa: E402
from app.schemas.vehicle import VehicleCreate  # noqa: E402
from app.services import rate_config_service, vehicle_service  # noqa: E402
from app.services.events import event_bus  # noqa: E402

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

# 2025-06-14 es sábado, 2025-06-16 es lunes
SATURDAY = date(2025, 6, 14)
MONDAY = date(2025, 6, 16)
PUBLISHED_AT = datetime(2025, 1, 1)
BOOKED_AT = datetime(2025, 6, 1, 9, 0)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    event_bus.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(fastapi_app) as c:
        yield c


@pytest.fixture
def headers():
    return {"X-Tenant-ID": TENANT, "X-Actor": "ops@test"}


def make_rate_config(**overrides) -> RateConfigCreate:
    data = dict(
        name="standard",
        effective_from=PUBLISHED_AT,
        base_rate=Decimal("1000"),
        distance_rate_per_km=Decimal("5"),
        weight_rate_per_unit=Decimal("2"),
        special_handling_rate=Decimal("300"),
        fuel_surcharge_pct=Decimal("0"),
        peak_hour_surcharge_pct=Decimal("0"),
        weekend_surcharge_pct=Decimal("0.10"),
        holiday_surcharge_pct=Decimal("0"),
        driver_overtime_rate_per_hour=Decimal("0"),
        insurance_rate_pct=Decimal("0"),
        default_toll_fee=Decimal("0"),
        default_parking_fee=Decimal("0"),
    )
    data.update(overrides)
    return RateConfigCreate(**data)


def make_booking(**overrides) -> BookingCreate:
    data = dict(
        customer=Customer(
            name="Ana Reyes",
            email="ana@example.com",
            phone="+63 900 111 2222",
            company="Reyes Trading",
        ),
        pickup=Stop(location="Manila Port", date=SATURDAY, time=time(14, 0)),
        delivery=Stop(location="Quezon City", date=SATURDAY, time=time(18, 0)),
        cargo=Cargo(
            description="Canned goods",
            weight=Decimal("500"),
            unit="kg",
            special_requirements="Keep dry",
        ),
        distance_km=Decimal("120"),
    )
    data.update(overrides)
    return BookingCreate(**data)


@pytest.fixture
def rate_config(db):
    return rate_config_service.publish_config(db, TENANT, make_rate_config(), created_by="test")


@pytest.fixture
def truck(db):
    return vehicle_service.create_vehicle(
        db,
        TENANT,
        VehicleCreate(
            plate_number="ABC-1234",
            model="Isuzu Elf",
            capacity_kg=4000,
            driver="Juan Dela Cruz",
            driver_contact="+63 917 000 0001",
        ),
    )


@pytest.fixture
def small_van(db):
    return vehicle_service.create_vehicle(
        db,
        TENANT,
        VehicleCreate(
            plate_number="VAN-0001",
            model="L300",
            capacity_kg=300,
            driver="Pedro Cruz",
        ),
    )


@pytest.fixture
def events():
    received = []
    event_bus.subscribe(received.append)
    yield received
    event_bus.unsubscribe(received.append)
