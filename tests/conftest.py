import pytest

from fastapi.testclient import TestClient

from formflow.controller import BuilderSessionStore, FormBuilderController
from formflow.storage import InMemoryFormStorage


class FakeTimer:
    """Stands in for threading.Timer; fires only when a test says so."""

    instances = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def fake_timer():
    FakeTimer.instances = []
    yield FakeTimer
    FakeTimer.instances = []


@pytest.fixture
def storage():
    return InMemoryFormStorage()


@pytest.fixture
def controller(storage, fake_timer):
    return FormBuilderController(storage=storage, autosave_delay=30, timer_factory=fake_timer)


@pytest.fixture
def api_client(storage):
    """FastAPI TestClient backed by in-memory storage."""
    from formflow.main import app
    app.state.sessions = BuilderSessionStore(storage, autosave_delay=0)
    with TestClient(app) as client:
        yield client
