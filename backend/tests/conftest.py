import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from filerelay.core.config import Settings
from filerelay.main import build_relay_service, create_app
from filerelay.services.registry import FileRegistry
from filerelay.services.storage import LocalStorageService
from filerelay.tasks.scheduler import ExpiryScheduler


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, delay, callback, args) -> None:
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Collects timers and cleanup tasks so tests decide when they run."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []
        self.submitted: list = []

    def call_later(self, delay, callback, *args) -> FakeTimer:
        timer = FakeTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    def submit(self, coro_factory) -> None:
        self.submitted.append(coro_factory)

    def fire(self, timer: FakeTimer, force: bool = False) -> None:
        # force=True mimics a timer that was already due when it got cancelled
        if force or not timer.cancelled:
            timer.callback(*timer.args)

    async def run_submitted(self) -> None:
        while self.submitted:
            await self.submitted.pop(0)()


class RecordingStorage(LocalStorageService):
    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.deleted: list[str] = []
        self.fail_deletes = False

    async def delete_object(self, key: str) -> None:
        self.deleted.append(key)
        if self.fail_deletes:
            raise OSError("disk unavailable")
        await super().delete_object(key)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENV="test",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        STORAGE_BACKEND="local",
        PURGE_ON_STARTUP=False,
        FILE_LIFETIME_SECONDS=0.1,
        EXPIRY_GRACE_SECONDS=2.0,
        MAX_FILE_SIZE_BYTES=1024,
        MAX_FILES_PER_UPLOAD=10,
        MAX_PARALLEL_CLEANUPS=2,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def storage(settings) -> RecordingStorage:
    return RecordingStorage(settings)


@pytest.fixture
def registry(storage, fake_scheduler) -> FileRegistry:
    return FileRegistry(storage, fake_scheduler, grace_period=2.0)


@pytest_asyncio.fixture
async def app_instance(settings, clock):
    app = create_app(settings)

    # Setup state for tests, mimicking lifespan events
    scheduler = ExpiryScheduler(settings.max_parallel_cleanups)
    relay_service = build_relay_service(settings, scheduler, clock=clock)
    app.state.scheduler = scheduler
    app.state.relay_service = relay_service

    await scheduler.start()
    yield app
    relay_service.registry.clear()
    await scheduler.stop()


@pytest_asyncio.fixture
async def client(app_instance):
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
