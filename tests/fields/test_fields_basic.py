import pytest

OWNER = (10, "owner1", "owner")
OTHER_OWNER = (11, "owner2", "owner")
CUSTOMER = (1, "user1", "customer")
ADMIN = (99, "admin1", "admin")

FIELD_BODY = {
    "name": "Arena Futsal",
    "address": "Jl. Merdeka 1",
    "description": "Indoor vinyl court",
    "image_url": None,
    "price_per_hour": 100000,
}


@pytest.fixture
def owner_headers(auth):
    return auth(*OWNER)


@pytest.fixture
def field_id(client, owner_headers):
    res = client.post("/api/v1/fields", json=FIELD_BODY, headers=owner_headers)
    assert res.status_code == 201
    return res.json()["id"]


def test_health(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json() == {"service": "bookings", "status": "running"}


def test_owner_can_create_field(client, owner_headers):
    res = client.post("/api/v1/fields", json=FIELD_BODY, headers=owner_headers)
    assert res.status_code == 201
    body = res.json()
    assert body["owner_id"] == 10
    assert body["name"] == "Arena Futsal"
    assert body["price_per_hour"] == 100000


def test_customer_cannot_create_field(client, auth):
    res = client.post("/api/v1/fields", json=FIELD_BODY, headers=auth(*CUSTOMER))
    assert res.status_code == 403


def test_requests_without_token_are_rejected(client):
    res = client.get("/api/v1/fields")
    assert res.status_code in (401, 403)


def test_invalid_token_is_rejected(client):
    res = client.get("/api/v1/fields", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_non_positive_price_is_rejected(client, owner_headers):
    res = client.post("/api/v1/fields", json={**FIELD_BODY, "price_per_hour": 0}, headers=owner_headers)
    assert res.status_code == 422


def test_blank_name_is_invalid_input(client, owner_headers):
    res = client.post("/api/v1/fields", json={**FIELD_BODY, "name": "   "}, headers=owner_headers)
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "InvalidInput"
    assert body["service"] == "bookings"
    assert body["path"] == "/api/v1/fields"


def test_list_and_get_fields(client, auth, field_id, owner_headers):
    client.post("/api/v1/fields", json={**FIELD_BODY, "name": "Other"}, headers=auth(*OTHER_OWNER))

    res = client.get("/api/v1/fields", headers=auth(*CUSTOMER))
    assert res.status_code == 200
    assert len(res.json()) == 2

    res = client.get("/api/v1/fields/mine", headers=owner_headers)
    assert [f["id"] for f in res.json()] == [field_id]

    res = client.get(f"/api/v1/fields/{field_id}", headers=auth(*CUSTOMER))
    assert res.status_code == 200
    assert res.json()["name"] == "Arena Futsal"


def test_unknown_field_is_not_found(client, auth):
    res = client.get("/api/v1/fields/404", headers=auth(*CUSTOMER))
    assert res.status_code == 404
    assert res.json()["error"] == "NotFound"


def test_only_owner_can_update_field(client, auth, field_id, owner_headers):
    update = {**FIELD_BODY, "name": "Arena Futsal 2", "price_per_hour": 120000}

    res = client.put(f"/api/v1/fields/{field_id}", json=update, headers=auth(*OTHER_OWNER))
    assert res.status_code == 403
    assert res.json()["error"] == "Unauthorized"

    res = client.put(f"/api/v1/fields/{field_id}", json=update, headers=owner_headers)
    assert res.status_code == 200
    assert res.json()["price_per_hour"] == 120000


def test_setup_and_get_schedule(client, auth, field_id, owner_headers):
    body = {
        "schedules": [
            {"day_of_week": 6, "open_time": "09:00", "close_time": "17:00"},
            {"day_of_week": 1, "open_time": "08:00", "close_time": "22:00"},
        ]
    }
    res = client.put(f"/api/v1/fields/{field_id}/schedules", json=body, headers=owner_headers)
    assert res.status_code == 200
    assert [s["day_of_week"] for s in res.json()] == [1, 6]

    res = client.get(f"/api/v1/fields/{field_id}/schedules", headers=auth(*CUSTOMER))
    schedules = res.json()
    assert [(s["day_name"], s["open_time"], s["close_time"]) for s in schedules] == [
        ("Monday", "08:00:00", "22:00:00"),
        ("Saturday", "09:00:00", "17:00:00"),
    ]


def test_invalid_schedule_keeps_previous_one(client, auth, field_id, owner_headers):
    good = {"schedules": [{"day_of_week": 1, "open_time": "08:00", "close_time": "22:00"}]}
    client.put(f"/api/v1/fields/{field_id}/schedules", json=good, headers=owner_headers)

    bad = {
        "schedules": [
            {"day_of_week": 2, "open_time": "08:00", "close_time": "12:00"},
            {"day_of_week": 3, "open_time": "12:00", "close_time": "08:00"},
        ]
    }
    res = client.put(f"/api/v1/fields/{field_id}/schedules", json=bad, headers=owner_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "InvalidInput"

    res = client.get(f"/api/v1/fields/{field_id}/schedules", headers=auth(*CUSTOMER))
    assert [s["day_of_week"] for s in res.json()] == [1]


@pytest.mark.parametrize(
    "entry",
    [
        {"day_of_week": 7, "open_time": "08:00", "close_time": "10:00"},
        {"day_of_week": 1, "open_time": "8am", "close_time": "10:00"},
        {"day_of_week": 1, "open_time": "10:00", "close_time": "10:00"},
    ],
)
def test_schedule_entries_are_validated(client, field_id, owner_headers, entry):
    res = client.put(f"/api/v1/fields/{field_id}/schedules", json={"schedules": [entry]}, headers=owner_headers)
    assert res.status_code == 400


def test_other_owner_cannot_set_schedule(client, auth, field_id):
    body = {"schedules": [{"day_of_week": 1, "open_time": "08:00", "close_time": "22:00"}]}
    res = client.put(f"/api/v1/fields/{field_id}/schedules", json=body, headers=auth(*OTHER_OWNER))
    assert res.status_code == 403


def test_slots_for_open_day(client, auth, field_id, owner_headers):
    body = {"schedules": [{"day_of_week": 1, "open_time": "08:00", "close_time": "11:00"}]}
    client.put(f"/api/v1/fields/{field_id}/schedules", json=body, headers=owner_headers)

    res = client.get(f"/api/v1/fields/{field_id}/slots", params={"date": "2026-03-09"}, headers=auth(*CUSTOMER))
    assert res.status_code == 200
    assert res.json() == [
        {"start_time": "2026-03-09T08:00:00", "end_time": "2026-03-09T09:00:00", "available": True},
        {"start_time": "2026-03-09T09:00:00", "end_time": "2026-03-09T10:00:00", "available": True},
        {"start_time": "2026-03-09T10:00:00", "end_time": "2026-03-09T11:00:00", "available": True},
    ]


def test_slots_for_closed_day(client, auth, field_id, owner_headers):
    body = {"schedules": [{"day_of_week": 1, "open_time": "08:00", "close_time": "11:00"}]}
    client.put(f"/api/v1/fields/{field_id}/schedules", json=body, headers=owner_headers)

    res = client.get(f"/api/v1/fields/{field_id}/slots", params={"date": "2026-03-10"}, headers=auth(*CUSTOMER))
    assert res.status_code == 200
    assert res.json() == []


def test_delete_field(client, auth, field_id, owner_headers):
    res = client.delete(f"/api/v1/fields/{field_id}", headers=auth(*OTHER_OWNER))
    assert res.status_code == 403

    res = client.delete(f"/api/v1/fields/{field_id}", headers=owner_headers)
    assert res.status_code == 204

    res = client.get(f"/api/v1/fields/{field_id}", headers=auth(*CUSTOMER))
    assert res.status_code == 404


def test_field_with_active_booking_cannot_be_deleted(client, auth, field_id, owner_headers):
    res = client.post(
        "/api/v1/bookings",
        json={"field_id": field_id, "start_time": "2026-03-09T18:00:00", "duration_hours": 1},
        headers=auth(*CUSTOMER),
    )
    assert res.status_code == 201

    res = client.delete(f"/api/v1/fields/{field_id}", headers=owner_headers)
    assert res.status_code == 409
    assert res.json()["error"] == "FieldInUse"
