from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from countdown_push.api.deps import get_supervisor
from countdown_push.configs.push import PushConfig
from countdown_push.configs.schedule import ScheduleConfig
from countdown_push.core.notification.dispatch import DispatchOutcome, DispatchResult
from countdown_push.core.supervisor import SchedulerSupervisor
from countdown_push.main import app
from countdown_push.models.subscription import EndpointDescriptor
from countdown_push.repos.subscription import SubscriptionStore
from countdown_push.tasks.scheduler import JobScheduler

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeDispatcher:
    """Records every send and answers with a configurable outcome per endpoint."""

    def __init__(self, outcome: DispatchOutcome = DispatchOutcome.DELIVERED) -> None:
        self.outcome = outcome
        self.outcomes: dict[str, DispatchOutcome] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def send(self, descriptor: EndpointDescriptor, payload: dict[str, Any]) -> DispatchResult:
        self.calls.append((descriptor.endpoint, payload))
        outcome = self.outcomes.get(descriptor.endpoint, self.outcome)
        status_code = 410 if outcome == DispatchOutcome.PERMANENTLY_GONE else None
        return DispatchResult(outcome, status_code)


@pytest.fixture
def schedule_config() -> ScheduleConfig:
    return ScheduleConfig(
        EventName="Helalink",
        LaunchTime="2026-12-13T00:00:00",
        DefaultTimezone="Africa/Nairobi",
        DailyTimes=["09:00"],
    )


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "subscriptions.json"


@pytest.fixture
def store(store_path: Path, schedule_config: ScheduleConfig) -> SubscriptionStore:
    return SubscriptionStore(store_path, defaults=schedule_config)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def job_scheduler(
    store: SubscriptionStore,
    dispatcher: FakeDispatcher,
    clock: FrozenClock,
    schedule_config: ScheduleConfig,
) -> Generator[JobScheduler, None, None]:
    """JobScheduler whose APScheduler is never started: jobs stay pending and fires are driven by hand."""
    scheduler = JobScheduler(
        store,
        dispatcher,
        schedule_config=schedule_config,
        push_config=PushConfig(),
        now_fn=clock,
    )
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def supervisor(store: SubscriptionStore, job_scheduler: JobScheduler) -> SchedulerSupervisor:
    return SchedulerSupervisor(store, job_scheduler)


@pytest_asyncio.fixture
async def async_client(supervisor: SchedulerSupervisor) -> AsyncGenerator[AsyncClient, None]:
    """Async test client wired to the test supervisor (lifespan is not run)."""
    app.dependency_overrides[get_supervisor] = lambda: supervisor
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
