import pytest

from fakes import FakeEngine, FakeSurface, SleepRecorder

from pagepilot.controller import RunController
from pagepilot.credentials import API_KEY_NAME, MemoryCredentialStore
from pagepilot.executor import ActionExecutor
from pagepilot.perception import PerceptionSource
from pagepilot.runlog import RunLog
from pagepilot.surface import SurfaceSlot


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def slot(surface):
    return SurfaceSlot(surface)


@pytest.fixture
def log():
    return RunLog()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def executor(slot, log, sleeps):
    return ActionExecutor(slot, log, sleep=sleeps)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def make_controller(slot, log, executor, engine):
    def _make(**kwargs):
        kwargs.setdefault("goal", "open the pricing page")
        kwargs.setdefault("automation_enabled", True)
        kwargs.setdefault("credentials", MemoryCredentialStore({API_KEY_NAME: "test-key"}))
        return RunController(
            slot,
            kwargs.pop("engine", engine),
            perception=PerceptionSource(slot, interval=0.001, timeout=0.05),
            executor=executor,
            log=log,
            **kwargs,
        )

    return _make
