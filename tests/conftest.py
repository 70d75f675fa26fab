import os
import sys
import asyncio
import inspect

import pytest

# Ensure project root is on sys.path so `import app` works in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.config import StoreConfig  # noqa: E402
from app.state.store import StateStore  # noqa: E402


def pytest_pyfunc_call(pyfuncitem):
    """Allow running async tests without pytest-asyncio.

    If the test function is a coroutine, run it in a fresh event loop.
    """
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        funcargs = pyfuncitem.funcargs
        sig = inspect.signature(testfunction)
        # Filter only the parameters that the test function expects
        allowed = {name: funcargs[name] for name in sig.parameters.keys() if name in funcargs}
        asyncio.run(testfunction(**allowed))
        return True
    return None


class ManualClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Records deliveries; recipients in ``failing`` raise, in ``rejecting`` return False."""

    def __init__(self, failing=(), rejecting=(), delays=None):
        self.failing = set(failing)
        self.rejecting = set(rejecting)
        self.delays = dict(delays or {})
        self.sent = []
        self.attempts = []

    async def deliver(self, recipient: str, text: str) -> bool:
        self.attempts.append(recipient)
        delay = self.delays.get(recipient)
        if delay:
            await asyncio.sleep(delay)
        if recipient in self.failing:
            raise ConnectionError(f"twilio unreachable for {recipient}")
        if recipient in self.rejecting:
            return False
        self.sent.append((recipient, text))
        return True

    def is_configured(self) -> bool:
        return True


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def config() -> StoreConfig:
    return StoreConfig()


@pytest.fixture
def store(config: StoreConfig, clock: ManualClock) -> StateStore:
    return StateStore(config, clock=clock)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_transport():
    return FakeTransport
