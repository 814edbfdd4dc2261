"""Bursty classroom check-in load.

Each simulated student reads the code from the display endpoint, as if
scanning the projected QR, and submits it with a random phone number.
Rate limits are per IP, so raise RATE_LIMITS["check_in"] or run from
several hosts when load testing.
"""
import os
import random

from locust import HttpUser, task, between, events


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    from dotenv import load_dotenv
    load_dotenv()

    host = environment.host or os.getenv("LOCUST_HOST")
    if not host:
        raise RuntimeError("Set --host or LOCUST_HOST")
    print(f"Load testing check-ins against {host}")


class StudentUser(HttpUser):
    wait_time = between(1, 5)

    def on_start(self):
        self.phone_number = "+1555" + "".join(random.choice("0123456789") for _ in range(7))

    @task(10)
    def scan_and_check_in(self):
        with self.client.get("/api/v1/otp/current", name="GET /api/v1/otp/current", catch_response=True) as response:
            if response.status_code != 200:
                response.failure(f"Failed to read current code: {response.status_code}")
                return
            code = response.json()["code"]

        with self.client.post(
            "/api/v1/checkins",
            json={"phone_number": self.phone_number, "otp": code},
            name="POST /api/v1/checkins",
            catch_response=True,
        ) as checkin_response:
            if checkin_response.status_code == 429:
                checkin_response.success()
            elif checkin_response.status_code != 200:
                checkin_response.failure(f"Check-in rejected: {checkin_response.text}")

    @task(1)
    def mistyped_code(self):
        with self.client.post(
            "/api/v1/checkins",
            json={"phone_number": self.phone_number, "otp": "ZZZZZ"},
            name="POST /api/v1/checkins (invalid)",
            catch_response=True,
        ) as response:
            if response.status_code in (400, 429):
                response.success()
            else:
                response.failure(f"Expected 400 for a 5-character code, got {response.status_code}")

    @task(2)
    def display_qr(self):
        self.client.get("/api/v1/otp/current/qr?size=300", name="GET /api/v1/otp/current/qr")
