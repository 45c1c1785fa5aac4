"""Shared fixtures."""

from __future__ import annotations

import pytest

from evstore.api import build_application
from evstore.api.router import Request
from evstore.core.config import EvStoreConfig
from evstore.core.types import ManualClock
from evstore.observability.stats import StatsAggregator
from evstore.service import DataService
from evstore.storage import InMemoryRecordStore, StorageConfig

# Known credential pair
UPLOAD_KEY = "8e88f1b62b946dd3fccfd8eaf54c9a2e5e27747c3662f2e20645073e4626d7c5"
DOWNLOAD_KEY = "fcbbda7c04eba41d060b70d1bf7fde8c4a148a087729017d22fc54037c9eb11b"

# 2023-11-14T22:13:20Z, thirteen minutes into the hour
START = 1_700_000_000.0


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=START)


@pytest.fixture
def memory_store(clock: ManualClock) -> InMemoryRecordStore:
    return InMemoryRecordStore(retention_seconds=60, clock=clock)


@pytest.fixture
def service(memory_store: InMemoryRecordStore, clock: ManualClock) -> DataService:
    return DataService(memory_store, clock=clock)


@pytest.fixture
def stats(clock: ManualClock) -> StatsAggregator:
    return StatsAggregator(clock=clock)


@pytest.fixture
def application(memory_store: InMemoryRecordStore, clock: ManualClock):
    config = EvStoreConfig(storage=StorageConfig.for_testing())
    return build_application(config, memory_store, clock=clock, monotonic=clock)


@pytest.fixture
def get(application):
    """Dispatch a GET through the full middleware chain."""

    async def _get(url: str, remote_addr: str = "", headers: dict[str, str] | None = None):
        request = Request.from_raw("GET", url, headers or {"Host": "example.test"}, remote_addr=remote_addr)
        return await application.router.dispatch(request)

    return _get
