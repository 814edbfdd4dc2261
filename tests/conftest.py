"""Shared test fixtures and configuration."""
import pytest
from fastapi.testclient import TestClient

from app.main import app, SERVICE_KEYS
from app.core.metrics import OTPMetrics
from app.core.security import ADMIN_COOKIE_NAME, create_access_token
from app.db.store import CheckInStore
from app.services import CheckInService, DeliveryRenderer, OTPEngine
from tests.utils import ManualClock, RecordingSleep, TARGET_NUMBER, TEST_SECRET, T0, WINDOW_MS


@pytest.fixture(autouse=True)
def disable_rate_limiting_for_tests(request):
    """Disable rate limiting for all tests except rate limiting tests."""
    from app.core.rate_limit import limiter

    if "rate_limit" in request.keywords:
        limiter.enabled = True
        limiter.reset()
        yield
        limiter.reset()
    else:
        limiter.enabled = False
        yield
        limiter.enabled = True


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture(scope="function")
def store(clock, sleep):
    """Connected in-memory store with a fresh schema."""
    checkin_store = CheckInStore(database_url="sqlite:///:memory:", clock=clock, retry_delay=0.5, sleep=sleep)
    checkin_store.connect()
    checkin_store.create_schema()
    yield checkin_store
    checkin_store.close()


@pytest.fixture
def metrics():
    return OTPMetrics()


@pytest.fixture
def engine(clock, metrics):
    return OTPEngine(TEST_SECRET, window_ms=WINDOW_MS, clock=clock, metrics=metrics)


@pytest.fixture
def renderer(clock):
    return DeliveryRenderer(TARGET_NUMBER, clock=clock)


@pytest.fixture
def service(engine, store, clock):
    return CheckInService(engine, store, clock=clock)


@pytest.fixture(scope="function")
def client(store, engine, metrics, renderer, service):
    """Test client whose app.state holds the test services."""
    app.state.store = store
    app.state.otp_engine = engine
    app.state.otp_metrics = metrics
    app.state.renderer = renderer
    app.state.checkin_service = service

    with TestClient(app) as test_client:
        yield test_client

    for key in SERVICE_KEYS:
        setattr(app.state, key, None)


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT token."""
    return create_access_token({"is_admin": True})


@pytest.fixture
def admin_client(client, admin_token):
    """Create a test client with admin cookie already set."""
    client.cookies.set(ADMIN_COOKIE_NAME, admin_token)
    return client
