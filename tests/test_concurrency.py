import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import ConflictError, FreightError, SchedulingConflict
from app.db import Base, build_engine
from app.models.booking import VehicleAssignment
from app.schemas.vehicle import VehicleCreate
from app.services import booking_service, rate_config_service, vehicle_service
from conftest import BOOKED_AT, TENANT, make_booking, make_rate_config


@pytest.fixture
def file_sessions(tmp_path):
    # Cada hilo con su propia conexión: hace falta un fichero, no la BD en memoria
    engine = build_engine(f"sqlite:///{tmp_path / 'freight.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def seeded(file_sessions):
    db = file_sessions()
    try:
        rate_config_service.publish_config(db, TENANT, make_rate_config())
        truck = vehicle_service.create_vehicle(
            db,
            TENANT,
            VehicleCreate(plate_number="ABC-1234", model="Isuzu Elf", capacity_kg=4000, driver="Juan"),
        )
        first = booking_service.create_booking(db, TENANT, make_booking(), now=BOOKED_AT)
        second = booking_service.create_booking(db, TENANT, make_booking(), now=BOOKED_AT)
        return truck.vehicle_id, first, second
    finally:
        db.close()


def _race(file_sessions, calls):
    """Lanza todas las llamadas a la vez, cada una con su sesión."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        db = file_sessions()
        try:
            barrier.wait(5)
            return call(db)
        except FreightError as exc:
            return exc
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def _active_assignments(file_sessions, vehicle_id):
    db = file_sessions()
    try:
        return list(
            db.execute(
                select(VehicleAssignment).where(
                    VehicleAssignment.vehicle_id == vehicle_id,
                    VehicleAssignment.active.is_(True),
                )
            ).scalars()
        )
    finally:
        db.close()


def test_one_vehicle_two_overlapping_confirms(file_sessions, seeded):
    vehicle_id, first, second = seeded

    results = _race(
        file_sessions,
        [
            lambda db, ref=b.booking_reference: booking_service.confirm(
                db, TENANT, ref, actor="ops", vehicle_id=vehicle_id
            )
            for b in (first, second)
        ],
    )

    errors = [r for r in results if isinstance(r, Exception)]
    confirmed = [r for r in results if not isinstance(r, Exception)]
    assert len(confirmed) == 1
    assert len(errors) == 1 and isinstance(errors[0], SchedulingConflict)

    active = _active_assignments(file_sessions, vehicle_id)
    assert [a.booking_id for a in active] == [confirmed[0].id]


def test_same_booking_confirmed_twice_with_same_version(file_sessions, seeded):
    vehicle_id, first, _ = seeded
    ref = first.booking_reference
    version = first.version

    results = _race(
        file_sessions,
        [
            lambda db: booking_service.confirm(
                db, TENANT, ref, actor="ops-a", vehicle_id=vehicle_id, expected_version=version
            ),
            lambda db: booking_service.confirm(
                db, TENANT, ref, actor="ops-b", vehicle_id=vehicle_id, expected_version=version
            ),
        ],
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1 and isinstance(errors[0], ConflictError)

    db = file_sessions()
    try:
        booking = booking_service.get_booking(db, TENANT, ref)
        assert booking.status == "Confirmed"
        assert [h.to_status for h in booking.history] == ["Pending", "Confirmed"]
    finally:
        db.close()
    assert len(_active_assignments(file_sessions, vehicle_id)) == 1
