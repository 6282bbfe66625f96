"""Shared fixtures: diagnostics, a clock-controlled SQLite cache and mock HTTP clients.

HTTP is never real: every client is an httpx.AsyncClient over a MockTransport
whose handler routes on host and path.
"""

import httpx
import pytest

from buurtinfo.data.cache import SQLiteStore, TTLCache
from buurtinfo.models.diagnostics import Diagnostics

T0 = 1_700_000_000_000  # fixed epoch ms for cache tests


class FakeClock:
    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def diag() -> Diagnostics:
    return Diagnostics()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock) -> TTLCache:
    return TTLCache(SQLiteStore(str(tmp_path / "cache.db")), clock=clock)


@pytest.fixture
async def make_client():
    """Factory: handler(request) -> httpx.Response  =>  AsyncClient."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()
