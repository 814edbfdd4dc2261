"""Concurrent check-ins against a file-backed store."""
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.db.store import CheckInStore
from app.services import CheckInService, OTPEngine
from tests.utils import ManualClock, TEST_SECRET, T0, WINDOW_MS


@pytest.fixture
def file_store(tmp_path):
    clock = ManualClock(T0)
    store = CheckInStore(database_url=f"sqlite:///{tmp_path / 'checkin.db'}", clock=clock)
    store.connect()
    store.create_schema()
    yield store
    store.close()


@pytest.mark.integration
class TestConcurrentCheckins:
    """Test that parallel submissions are all recorded exactly once."""

    def test_fifty_parallel_submissions(self, file_store):
        clock = file_store.clock
        engine = OTPEngine(TEST_SECRET, window_ms=WINDOW_MS, clock=clock)
        service = CheckInService(engine, file_store, clock=clock)
        code = engine.generate(T0)

        def submit(i):
            return service.check_in(f"+1555000{i:04d}", code)

        with ThreadPoolExecutor(max_workers=50) as pool:
            outcomes = list(pool.map(submit, range(50)))

        assert all(o.accepted for o in outcomes)
        assert len({o.record_id for o in outcomes}) == 50
        assert file_store.count() == 50

    def test_parallel_mixed_outcomes(self, file_store):
        clock = file_store.clock
        engine = OTPEngine(TEST_SECRET, window_ms=WINDOW_MS, clock=clock)
        service = CheckInService(engine, file_store, clock=clock)
        codes = [engine.generate(T0), "ABCDE", engine.generate(T0 - 4 * WINDOW_MS)]

        with ThreadPoolExecutor(max_workers=10) as pool:
            outcomes = list(pool.map(
                lambda i: service.check_in(f"+1555100{i:04d}", codes[i % 3]),
                range(30),
            ))

        stats = file_store.stats(clock.now().date(), clock.now().date())
        assert len({o.record_id for o in outcomes}) == 30
        assert stats["counts_by_status"] == {"valid": 10, "expired": 10, "invalid": 10, "error": 0}
