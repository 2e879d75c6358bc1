import os
import sys
import pytest

# Ensure the backend root (containing the `tournament_clock` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from tournament_clock import create_app, socketio

# 2026-01-01T00:00:00Z
START_MS = 1767225600000


class FakeClock:
    """Wall clock in epoch milliseconds that only moves when told to."""

    def __init__(self, now_ms=START_MS):
        self.now_ms = now_ms

    def __call__(self):
        return self.now_ms

    def advance(self, seconds=0.0, ms=0):
        self.now_ms += int(seconds * 1000) + ms


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = '*'
    DEFAULT_ROUND_MINUTES = 5
    DEFAULT_ROUND_SECONDS = 0
    DEFAULT_TOTAL_ROUNDS = 3
    BETWEEN_ROUNDS_ENABLED = False
    BETWEEN_ROUNDS_SEC = 60
    TICK_INTERVAL_SEC = 1.0
    TIME_SYNC_ENABLED = False
    TIME_SYNC_INTERVAL_SEC = 1800
    TIME_SYNC_SERVERS = 'primary.test,fallback.test'
    TIME_SYNC_TIMEOUT_SEC = 1
    TIME_SYNC_DRIFT_THRESHOLD_MS = 0
    SUBSCRIBER_QUEUE_SIZE = 64
    SYNC_SETTINGS_POLICY = 'seed'
    CONTROLLER_DEBOUNCE_MS = 0
    TIMER_HEARTBEAT_SEC = 0


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def flask_app(fake_clock):
    application = create_app(TestConfig, wall_clock=fake_clock)
    with application.app_context():
        yield application


@pytest.fixture()
def service(flask_app):
    return flask_app.extensions['clock_service']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
