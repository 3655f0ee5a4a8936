"""
Locust Load Test Suite

Expects a seeded database: users with ids 1..LOAD_USER_COUNT and a bookable
space LOAD_SPACE_ID whose building allows at least one booking per user.
Tokens are signed locally with the API's SECRET_KEY, standing in for the
identity provider.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test report cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import itertools
import os
import random
from datetime import datetime, timezone, timedelta

from jose import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
LOAD_USER_COUNT = int(os.getenv("LOAD_USER_COUNT", "100"))
LOAD_SPACE_ID = int(os.getenv("LOAD_SPACE_ID", "1"))
LOAD_BUILDING_ID = int(os.getenv("LOAD_BUILDING_ID", "1"))
ADMIN_USER_ID = int(os.getenv("ADMIN_USER_ID", "1"))

# Everyone fights for the same hour, a week from now
CONTESTED_START = (datetime.now(timezone.utc) + timedelta(days=7)).replace(minute=0, second=0, microsecond=0)
CONTESTED_END = CONTESTED_START + timedelta(hours=1)

_user_ids = itertools.cycle(range(1, LOAD_USER_COUNT + 1))


def make_headers(user_id: int, role: str = "user") -> dict:
    token = jwt.encode(
        {
            "sub": str(user_id),
            "role": role,
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        SECRET_KEY,
        algorithm=ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"Contested slot: space {LOAD_SPACE_ID}, {CONTESTED_START.isoformat()} - {CONTESTED_END.isoformat()}")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - N users -> 1 space, 1 slot

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM reservations
      WHERE space_id = X AND status IN ('confirmed', 'checked_in');
    Should be 1
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = make_headers(next(_user_ids))

    @tag("concurrency")
    @task
    def book_contested_slot(self):
        """All users fight for the same space and hour."""
        with self.client.post("/api/v1/reservations/",
            json={
                "space_id": LOAD_SPACE_ID,
                "start_time": CONTESTED_START.isoformat(),
                "end_time": CONTESTED_END.isoformat(),
                "title": "Load test",
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: slot taken or quota reached
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Report cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = make_headers(ADMIN_USER_ID, role="admin")
        day = CONTESTED_START.replace(hour=0)
        self.period = {"start": day.isoformat(), "end": (day + timedelta(days=1)).isoformat()}

    @tag("throughput", "read")
    @task(10)
    def building_occupancy_cached(self):
        """Hammer the cached report endpoint."""
        self.client.get("/api/v1/reports/occupancy",
            params={"scope": "building", "scope_id": LOAD_BUILDING_ID, **self.period},
            headers=self.headers,
            name="/api/v1/reports/occupancy [cached]")

    @tag("throughput", "read")
    @task(3)
    def list_reservations(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/reservations/?page={page}&page_size=20",
            headers=self.headers,
            name="/api/v1/reservations/")

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = make_headers(next(_user_ids))

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_space(self):
        with self.client.post("/api/v1/reservations/",
            json={
                "space_id": 999999,
                "start_time": CONTESTED_START.isoformat(),
                "end_time": CONTESTED_END.isoformat(),
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def inverted_interval(self):
        with self.client.post("/api/v1/reservations/",
            json={
                "space_id": LOAD_SPACE_ID,
                "start_time": CONTESTED_END.isoformat(),
                "end_time": CONTESTED_START.isoformat(),
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def in_the_past(self):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        with self.client.post("/api/v1/reservations/",
            json={
                "space_id": LOAD_SPACE_ID,
                "start_time": past.isoformat(),
                "end_time": (past + timedelta(hours=1)).isoformat(),
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def zero_attendees(self):
        with self.client.post("/api/v1/reservations/",
            json={
                "space_id": LOAD_SPACE_ID,
                "start_time": CONTESTED_START.isoformat(),
                "end_time": CONTESTED_END.isoformat(),
                "attendees_count": 0,
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/reservations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/reservations/",
            json={"space_id": LOAD_SPACE_ID},
            catch_response=True
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly listing own reservations
      - Some bookings on random hours
      - Occasional cancels
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = make_headers(next(_user_ids))
        self.reservation_ids = []

    @task(50)
    def list_own(self):
        self.client.get("/api/v1/reservations/?page=1&page_size=20",
            headers=self.headers,
            name="/api/v1/reservations/")

    @task(10)
    def book_random_hour(self):
        start = CONTESTED_START + timedelta(days=random.randint(1, 30), hours=random.randint(0, 9))
        resp = self.client.post("/api/v1/reservations/",
            json={
                "space_id": LOAD_SPACE_ID,
                "start_time": start.isoformat(),
                "end_time": (start + timedelta(hours=1)).isoformat(),
            },
            headers=self.headers)
        if resp.status_code == 201:
            self.reservation_ids.append(resp.json()["id"])

    @task(3)
    def cancel_one(self):
        if self.reservation_ids:
            reservation_id = self.reservation_ids.pop()
            self.client.post(f"/api/v1/reservations/{reservation_id}/cancel",
                headers=self.headers,
                name="/api/v1/reservations/{id}/cancel")
