"""Pytest fixtures for resilient-ingest tests."""

from collections.abc import Callable

import pytest
import redis.exceptions

from resilient_ingest.config.settings import Settings
from resilient_ingest.ingestion.schemas import SourceMaterial, SourceType


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRedis:
    """
    In-memory stand-in for the redis.asyncio commands the cache uses.

    Expiry follows the injected clock. Set ``fail = True`` to make every
    command raise a connection error.
    """

    def __init__(self, clock: FakeClock | None = None):
        self._clock = clock or FakeClock()
        self._data: dict[str, tuple[str, float]] = {}
        self.fail = False
        self.closed = False
        self.commands: list[str] = []

    def _check(self, command: str) -> None:
        self.commands.append(command)
        if self.fail:
            raise redis.exceptions.ConnectionError("Error 111 connecting to localhost:6379")

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def remaining_ttl(self, key: str) -> float | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        return entry[1] - self._clock()

    @property
    def keys(self) -> list[str]:
        return [k for k in list(self._data) if self._live(k) is not None]

    async def get(self, key: str) -> str | None:
        self._check("get")
        return self._live(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check("setex")
        self._data[key] = (value, self._clock() + ttl)
        return True

    async def exists(self, *keys: str) -> int:
        self._check("exists")
        return sum(1 for key in keys if self._live(key) is not None)

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock: FakeClock) -> FakeRedis:
    return FakeRedis(fake_clock)


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing (no real backoff delays)."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",  # Use DB 1 for tests
        retry_initial_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        circuit_failure_threshold=2,
        circuit_reset_timeout_seconds=30.0,
        max_concurrent_sources=4,
    )


@pytest.fixture
def make_material() -> Callable[..., SourceMaterial]:
    """Factory for SourceMaterial with sensible defaults."""
    counter = {"n": 0}

    def _make(
        content: str,
        provider: str = "hnrss.org",
        source_type: SourceType = SourceType.FEED,
        title: str | None = None,
    ) -> SourceMaterial:
        counter["n"] += 1
        return SourceMaterial(
            id=f"ch1-{source_type.value}-{counter['n']}",
            source_type=source_type,
            provider=provider,
            title=title or f"Item {counter['n']}",
            content=content,
            url=f"https://{provider}/item/{counter['n']}",
        )

    return _make
