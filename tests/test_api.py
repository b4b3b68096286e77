from decimal import Decimal

from conftest import OTHER_TENANT

BOOKING_PAYLOAD = {
    "customer": {
        "name": "Ana Reyes",
        "email": "ana@example.com",
        "phone": "+63 900 111 2222",
        "company": "Reyes Trading",
    },
    "pickup": {"location": "Manila Port", "date": "2025-06-14", "time": "14:00:00"},
    "delivery": {"location": "Quezon City", "date": "2025-06-14", "time": "18:00:00"},
    "cargo": {
        "description": "Canned goods",
        "weight": "500",
        "unit": "kg",
        "special_requirements": "Keep dry",
    },
    "distance_km": "120",
}

RATE_CONFIG_PAYLOAD = {
    "name": "standard",
    "effective_from": "2025-01-01T00:00:00",
    "base_rate": "1000",
    "distance_rate_per_km": "5",
    "weight_rate_per_unit": "2",
    "special_handling_rate": "300",
    "fuel_surcharge_pct": "0",
    "peak_hour_surcharge_pct": "0",
    "weekend_surcharge_pct": "0.10",
    "holiday_surcharge_pct": "0",
    "driver_overtime_rate_per_hour": "0",
    "insurance_rate_pct": "0",
    "default_toll_fee": "0",
    "default_parking_fee": "0",
}

VEHICLE_PAYLOAD = {
    "plate_number": "ABC-1234",
    "model": "Isuzu Elf",
    "capacity_kg": 4000,
    "driver": "Juan Dela Cruz",
    "driver_contact": "+63 917 000 0001",
}


def _setup(client, headers):
    r = client.post("/api/v1/rate-configs/", json=RATE_CONFIG_PAYLOAD, headers=headers)
    assert r.status_code == 201, r.text
    r = client.post("/api/v1/vehicles/", json=VEHICLE_PAYLOAD, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["vehicle_id"]


def _book(client, headers, **extra):
    r = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, **extra}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json() == {"message": "ok"}


def test_tenant_header_is_required(client):
    r = client.get("/api/v1/bookings/")
    assert r.status_code == 400
    assert "X-Tenant-ID" in r.json()["detail"]


def test_publish_and_read_rate_config(client, headers):
    r = client.post("/api/v1/rate-configs/", json=RATE_CONFIG_PAYLOAD, headers=headers)
    assert r.status_code == 201
    body = r.json()
    assert body["version"] == 1
    assert body["created_by"] == "ops@test"

    r = client.get(
        "/api/v1/rate-configs/active",
        params={"at": "2025-06-01T00:00:00"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["name"] == "standard"

    r = client.get("/api/v1/rate-configs/standard/versions/3", headers=headers)
    assert r.status_code == 404
    assert r.json()["error"] == "ConfigNotFound"


def test_rate_config_rejects_bad_peak_hours(client, headers):
    payload = {**RATE_CONFIG_PAYLOAD, "peak_hours": [[19, 17]]}
    r = client.post("/api/v1/rate-configs/", json=payload, headers=headers)
    assert r.status_code == 422


def test_no_active_config_maps_to_404(client, headers):
    r = client.get(
        "/api/v1/rate-configs/active",
        params={"at": "2024-01-01T00:00:00"},
        headers=headers,
    )
    assert r.status_code == 404
    assert r.json()["error"] == "NoConfigAvailable"


def test_preview_quote(client, headers):
    _setup(client, headers)
    r = client.post(
        "/api/v1/rate-configs/preview",
        json={
            "distance_km": "120",
            "cargo_weight": "500",
            "has_special_requirements": True,
            "pickup_date": "2025-06-14",
            "pickup_time": "14:00:00",
            "config_name": "standard",
            "config_version": 1,
        },
        headers=headers,
    )
    assert r.status_code == 200, r.text
    breakdown = r.json()["breakdown"]
    assert Decimal(breakdown["total"]) == Decimal("3060")
    assert Decimal(breakdown["weekend_surcharge"]) == Decimal("160")


def test_unsupported_unit_maps_to_422(client, headers):
    _setup(client, headers)
    payload = {**BOOKING_PAYLOAD, "cargo": {**BOOKING_PAYLOAD["cargo"], "unit": "gallons"}}
    r = client.post("/api/v1/bookings/", json=payload, headers=headers)
    assert r.status_code == 422
    assert r.json()["error"] == "UnsupportedUnitError"
    assert r.json()["context"] == {"unit": "gallons"}


def test_booking_flow_over_http(client, headers):
    vehicle_id = _setup(client, headers)
    booking = _book(client, headers)
    ref = booking["booking_reference"]

    assert booking["status"] == "Pending"
    assert Decimal(booking["cost_breakdown"]["total"]) == Decimal("3060")
    assert booking["rate_config"] == {"name": "standard", "version": 1}

    r = client.post(f"/api/v1/bookings/{ref}/confirm", json={"vehicle_id": vehicle_id}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "Confirmed"
    assert r.json()["assigned_vehicle"]["plate_number"] == "ABC-1234"
    assert r.json()["quote_frozen"] is True

    # Pickup en 2025: el job con "ahora" real lo arranca
    r = client.post("/api/v1/bookings/jobs/start-due", headers=headers)
    assert r.status_code == 200
    assert [b["booking_reference"] for b in r.json()] == [ref]

    r = client.post(f"/api/v1/bookings/{ref}/complete", headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "Completed"

    r = client.get(f"/api/v1/bookings/{ref}/history", headers=headers)
    assert [h["to_status"] for h in r.json()] == ["Pending", "Confirmed", "InProgress", "Completed"]
    assert r.json()[1]["actor"] == "ops@test"

    r = client.get(f"/api/v1/bookings/{ref}/quote/verify", headers=headers)
    assert r.json()["matches"] is True


def test_illegal_transition_maps_to_409(client, headers):
    _setup(client, headers)
    ref = _book(client, headers)["booking_reference"]

    r = client.post(f"/api/v1/bookings/{ref}/complete", headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "IllegalTransitionError"

    r = client.get(f"/api/v1/bookings/track/{ref}", headers=headers)
    assert r.json()["status"] == "Pending"


def test_stale_version_maps_to_409(client, headers):
    vehicle_id = _setup(client, headers)
    booking = _book(client, headers)
    ref = booking["booking_reference"]

    r = client.patch(f"/api/v1/bookings/{ref}", json={"notes": "gate 3"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["version"] == booking["version"] + 1

    r = client.post(
        f"/api/v1/bookings/{ref}/confirm",
        json={"vehicle_id": vehicle_id, "expected_version": booking["version"]},
        headers=headers,
    )
    assert r.status_code == 409
    assert r.json()["error"] == "ConflictError"


def test_tracking_is_tenant_isolated(client, headers):
    _setup(client, headers)
    ref = _book(client, headers)["booking_reference"]

    r = client.get(f"/api/v1/bookings/track/{ref}", headers={"X-Tenant-ID": OTHER_TENANT})
    assert r.status_code == 404

    r = client.get("/api/v1/bookings/track/FB-20250101-AAAAAAAA", headers=headers)
    assert r.status_code == 404


def test_cancelled_booking_is_still_trackable(client, headers):
    vehicle_id = _setup(client, headers)
    ref = _book(client, headers, vehicle_id=vehicle_id)["booking_reference"]

    r = client.post(f"/api/v1/bookings/{ref}/cancel", json={"reason": "customer request"}, headers=headers)
    assert r.status_code == 200

    r = client.get(f"/api/v1/bookings/track/{ref}", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "Cancelled"
    assert body["assigned_vehicle"] is None
    assert body["cancelled_at"] is not None


def test_capacity_conflict_over_http(client, headers):
    _setup(client, headers)
    r = client.post(
        "/api/v1/vehicles/",
        json={**VEHICLE_PAYLOAD, "plate_number": "VAN-0001", "capacity_kg": 300},
        headers=headers,
    )
    van_id = r.json()["vehicle_id"]

    r = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "vehicle_id": van_id}, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "CapacityExceeded"

    r = client.get("/api/v1/bookings/", headers=headers)
    assert r.json()["count"] == 0


def test_reassign_vehicle_endpoint(client, headers):
    vehicle_id = _setup(client, headers)
    ref = _book(client, headers)["booking_reference"]

    r = client.post(f"/api/v1/bookings/{ref}/vehicle", json={"vehicle_id": vehicle_id}, headers=headers)
    assert r.status_code == 200
    assert r.json()["assigned_vehicle"]["vehicle_id"] == vehicle_id

    r = client.post(f"/api/v1/bookings/{ref}/vehicle", json={"vehicle_id": "missing"}, headers=headers)
    assert r.status_code == 404


def test_booking_stats(client, headers):
    vehicle_id = _setup(client, headers)
    _book(client, headers)
    _book(client, headers)
    cancelled = _book(client, headers, vehicle_id=vehicle_id)["booking_reference"]
    client.post(f"/api/v1/bookings/{cancelled}/cancel", headers=headers)

    r = client.get("/api/v1/bookings/stats", headers=headers)
    assert r.status_code == 200
    stats = r.json()
    assert stats["total_bookings"] == 3
    assert stats["by_status"]["Pending"] == 2
    assert stats["by_status"]["Cancelled"] == 1
    assert stats["by_status"]["Completed"] == 0
    assert Decimal(stats["quoted_value"]["PHP"]) == Decimal("6120")

    r = client.get("/api/v1/bookings/", params={"status_filter": "Cancelled"}, headers=headers)
    assert r.json()["count"] == 1


def test_vehicle_endpoints(client, headers):
    vehicle_id = _setup(client, headers)

    r = client.patch(f"/api/v1/vehicles/{vehicle_id}", json={"status": "Maintenance"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "Maintenance"

    r = client.get("/api/v1/vehicles/", params={"status_filter": "Available"}, headers=headers)
    assert r.json() == []

    r = client.get(f"/api/v1/vehicles/{vehicle_id}", headers={"X-Tenant-ID": OTHER_TENANT})
    assert r.status_code == 404

    ref = _book(client, headers)["booking_reference"]
    r = client.post(f"/api/v1/bookings/{ref}/confirm", json={"vehicle_id": vehicle_id}, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "VehicleUnavailable"


def test_booking_payload_rejects_unknown_fields(client, headers):
    _setup(client, headers)
    r = client.post("/api/v1/bookings/", json={**BOOKING_PAYLOAD, "total": "1"}, headers=headers)
    assert r.status_code == 422


def test_duplicate_plate_maps_to_409(client, headers):
    _setup(client, headers)

    r = client.post("/api/v1/vehicles/", json=VEHICLE_PAYLOAD, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "ConflictError"
    assert r.json()["context"] == {"plate_number": "ABC-1234"}

    r = client.post(
        "/api/v1/vehicles/",
        json={**VEHICLE_PAYLOAD, "plate_number": "XYZ-9999"},
        headers=headers,
    )
    assert r.status_code == 201
    other_id = r.json()["vehicle_id"]

    r = client.patch(f"/api/v1/vehicles/{other_id}", json={"plate_number": "ABC-1234"}, headers=headers)
    assert r.status_code == 409

    # La sesión sigue usable tras el rollback
    r = client.get(f"/api/v1/vehicles/{other_id}", headers=headers)
    assert r.json()["plate_number"] == "XYZ-9999"


def test_aware_datetimes_in_query_and_body(client, headers):
    payload = {**RATE_CONFIG_PAYLOAD, "effective_from": "2025-01-01T00:00:00+00:00"}
    r = client.post("/api/v1/rate-configs/", json=payload, headers=headers)
    assert r.status_code == 201, r.text
    assert "+" not in r.json()["effective_from"]

    r = client.get(
        "/api/v1/rate-configs/active",
        params={"at": "2025-06-01T00:00:00+08:00"},
        headers=headers,
    )
    assert r.status_code == 200

    r = client.post("/api/v1/vehicles/", json=VEHICLE_PAYLOAD, headers=headers)
    vehicle_id = r.json()["vehicle_id"]
    ref = _book(client, headers, vehicle_id=vehicle_id)["booking_reference"]
    r = client.post(f"/api/v1/bookings/{ref}/confirm", headers=headers)
    assert r.status_code == 200, r.text

    r = client.post(
        "/api/v1/bookings/jobs/start-due",
        params={"now": "2025-06-20T15:00:00Z"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert [b["booking_reference"] for b in r.json()] == [ref]


def test_inputs_beyond_six_decimals_map_to_422(client, headers):
    _setup(client, headers)
    r = client.post(
        "/api/v1/bookings/",
        json={**BOOKING_PAYLOAD, "distance_km": "1.0000004"},
        headers=headers,
    )
    assert r.status_code == 422

    r = client.get("/api/v1/bookings/", headers=headers)
    assert r.json()["count"] == 0


def test_booking_and_vehicle_expose_derived_fields(client, headers):
    vehicle_id = _setup(client, headers)
    booking = _book(client, headers)

    assert booking["allowed_transitions"] == ["Cancelled", "Confirmed"]
    assert booking["available_actions"] == ["Cancel", "Confirm"]

    r = client.post(f"/api/v1/bookings/{booking['booking_reference']}/cancel", headers=headers)
    assert r.json()["allowed_transitions"] == []
    assert r.json()["available_actions"] == []

    r = client.get(f"/api/v1/vehicles/{vehicle_id}", headers=headers)
    assert r.json()["capacity_tons"] == 4.0
