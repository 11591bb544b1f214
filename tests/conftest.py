"""Shared fixtures for leaderlease tests."""

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from leaderlease import ElectorConfig


class FakeClock:
    """Manually advanced wall clock for store operations."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Async engine on a fresh SQLite database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'leases.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_config() -> Callable[..., ElectorConfig]:
    """Factory for configs with short timings suited to tests."""

    def _make(**overrides: Any) -> ElectorConfig:
        settings: dict[str, Any] = {
            "schema": None,
            "lease_duration": 0.6,
            "renewal_interval": 0.1,
            "cleanup_interval": 60.0,
            "jitter_range": 0.02,
            "reclaim_grace": 0.2,
        }
        settings.update(overrides)
        return ElectorConfig(**settings)

    return _make
