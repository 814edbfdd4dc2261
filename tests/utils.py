from datetime import datetime

from app.core.clock import ms_to_datetime

TEST_SECRET = "abcd1234abcd1234"
WINDOW_MS = 30_000
T0 = 1_700_000_000_000
# Start of the window that contains T0
T0_WINDOW_START = T0 - T0 % WINDOW_MS
TARGET_NUMBER = "+1 (555) 010-0000"
PHONE = "+15551234567"


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now_ms: int = T0):
        self.ms = now_ms

    def now_ms(self) -> int:
        return self.ms

    def now(self) -> datetime:
        return ms_to_datetime(self.ms)

    def advance(self, ms: int) -> None:
        self.ms += ms

    def set(self, ms: int) -> None:
        self.ms = ms


class RecordingSleep:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
