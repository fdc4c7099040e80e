import cProfile
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///./profiling.db")

from fastapi.testclient import TestClient
from jose import jwt

from bookings_service.auth import ALGORITHM, SECRET_KEY
from bookings_service.main import app
from bookings_service.database import Base, engine

client = TestClient(app)


def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def headers_for(user_id: int, role: str) -> dict:
    token = jwt.encode(
        {
            "sub": f"{role}{user_id}",
            "role": role,
            "user_id": user_id,
            "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
        },
        SECRET_KEY,
        algorithm=ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


def scenario_bookings():
    """
    Open a field every day of the week and book most of its slots for a week.
    """
    owner = headers_for(1, "owner")
    r = client.post(
        "/api/v1/fields",
        json={"name": "Profiling Arena", "address": "Profiling St. 1", "price_per_hour": 100000},
        headers=owner,
    )
    r.raise_for_status()
    field_id = r.json()["id"]

    schedules = [{"day_of_week": d, "open_time": "08:00", "close_time": "22:00"} for d in range(7)]
    client.put(f"/api/v1/fields/{field_id}/schedules", json={"schedules": schedules}, headers=owner).raise_for_status()

    first_day = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    for offset in range(7):
        day = first_day + timedelta(days=offset)
        for hour in range(8, 22):
            # one customer per booking keeps the rate limiter out of the way
            customer = headers_for(1000 + offset * 24 + hour, "customer")
            start = day.replace(hour=hour)
            r = client.post(
                "/api/v1/bookings",
                json={"field_id": field_id, "start_time": start.isoformat(), "duration_hours": 1},
                headers=customer,
            )
            # every third slot is asked for twice to exercise the conflict path
            if hour % 3 == 0:
                client.post(
                    "/api/v1/bookings",
                    json={"field_id": field_id, "start_time": start.isoformat(), "duration_hours": 1},
                    headers=headers_for(5000 + offset * 24 + hour, "customer"),
                )
            if r.status_code != 201:
                raise RuntimeError(f"Unexpected status on booking: {r.status_code}")

        slots = client.get(
            f"/api/v1/fields/{field_id}/slots",
            params={"date": day.date().isoformat()},
            headers=owner,
        )
        slots.raise_for_status()


def main():
    reset_db()
    scenario_bookings()


if __name__ == "__main__":
    # run cProfile and sort by cumulative time
    cProfile.run("main()", sort="cumtime")
