import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Callable, List

import httpx
import pytest

from libs.http import HttpClient
from payment_client.app.clients.payment_api import PaymentApiClient
from payment_client.app.scheduler import TimerHandle
from payment_client.app.settings import Settings
from payment_client.app.widget import OtpWidget
from tests.fake_backend import BASE_TIME, FakeBank, create_app


@dataclass
class _Timer:
    interval: float
    due: float
    callback: Callable[[], None]
    handle: TimerHandle
    seq: int


@dataclass
class ManualScheduler:
    """Scheduler driven by ``advance(seconds)`` instead of the event loop."""

    now: float = 0.0
    timers: List[_Timer] = field(default_factory=list)
    pending: List[Any] = field(default_factory=list)
    _seq: int = 0

    def time(self) -> float:
        return self.now

    def call_every(self, interval, callback, *, name=""):
        handle = TimerHandle(name)
        self._seq += 1
        self.timers.append(_Timer(interval, self.now + interval, callback, handle, self._seq))
        return handle

    def spawn(self, coro, *, name=""):
        self.pending.append(coro)
        return coro

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.timers if not t.handle.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.now = timer.due
            timer.due += timer.interval
            timer.callback()
        self.now = target
        self.timers = [t for t in self.timers if not t.handle.cancelled]

    def active(self) -> List[str]:
        return sorted(t.handle.name for t in self.timers if not t.handle.cancelled)

    async def run_pending(self) -> None:
        while self.pending:
            await self.pending.pop(0)

    def discard_pending(self) -> None:
        for coro in self.pending:
            coro.close()
        self.pending.clear()


@pytest.fixture
def scheduler():
    s = ManualScheduler()
    yield s
    s.discard_pending()


@pytest.fixture
def bank(scheduler):
    return FakeBank(clock=scheduler.time)


@pytest.fixture
def config(tmp_path):
    return Settings(
        _env_file=None,
        API_BASE_URL="http://testserver",
        AUTH_STORE_PATH=str(tmp_path / "auth.json"),
    )


@pytest.fixture
def http(bank):
    return HttpClient("http://testserver", transport=httpx.ASGITransport(app=create_app(bank)))


@pytest.fixture
def api(http, bank):
    return PaymentApiClient(http, token=bank.token)


@pytest.fixture
def wall_clock(scheduler):
    return lambda: BASE_TIME + dt.timedelta(seconds=scheduler.now)


@pytest.fixture
def widget(api, scheduler, config, wall_clock):
    return OtpWidget(api, scheduler, config=config, wall_clock=wall_clock)
