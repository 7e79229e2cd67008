import asyncio
from datetime import UTC, datetime

import pytest

from rolecount.models import GuildSnapshot
from rolecount.snapshot import SnapshotCache, SnapshotFetchError


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _snapshot(tag: str) -> GuildSnapshot:
    return GuildSnapshot(guild_id=tag, members=(), roles={}, fetched_at=datetime.now(UTC))


class _Loader:
    def __init__(self, delay: float = 0.0) -> None:
        self.calls = 0
        self.delay = delay

    async def __call__(self) -> GuildSnapshot:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return _snapshot(f"load-{self.calls}")


@pytest.mark.asyncio
async def test_snapshot_reused_within_ttl() -> None:
    clock = _Clock()
    cache = SnapshotCache(ttl_seconds=60, clock=clock)
    loader = _Loader()

    first = await cache.get(loader)
    clock.now += 30
    second = await cache.get(loader)

    assert first is second
    assert loader.calls == 1
    assert cache.age == 30


@pytest.mark.asyncio
async def test_snapshot_refreshed_after_ttl() -> None:
    clock = _Clock()
    cache = SnapshotCache(ttl_seconds=60, clock=clock)
    loader = _Loader()

    await cache.get(loader)
    clock.now += 61
    refreshed = await cache.get(loader)

    assert refreshed.guild_id == "load-2"


@pytest.mark.asyncio
async def test_force_and_invalidate_refetch() -> None:
    cache = SnapshotCache(ttl_seconds=60, clock=_Clock())
    loader = _Loader()

    await cache.get(loader)
    assert (await cache.get(loader, force=True)).guild_id == "load-2"
    cache.invalidate()
    assert cache.age is None
    assert (await cache.get(loader)).guild_id == "load-3"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_fetch() -> None:
    cache = SnapshotCache(ttl_seconds=60)
    loader = _Loader(delay=0.05)

    results = await asyncio.gather(*(cache.get(loader) for _ in range(5)))

    assert loader.calls == 1
    assert all(r is results[0] for r in results)


@pytest.mark.asyncio
async def test_concurrent_forced_refresh_shared() -> None:
    cache = SnapshotCache(ttl_seconds=60)
    loader = _Loader(delay=0.05)
    await cache.get(loader)

    results = await asyncio.gather(cache.get(loader, force=True), cache.get(loader, force=True))

    assert loader.calls == 2
    assert results[0] is results[1]


@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_snapshot() -> None:
    clock = _Clock()
    cache = SnapshotCache(ttl_seconds=60, clock=clock)
    good = await cache.get(_Loader())

    async def broken() -> GuildSnapshot:
        raise ConnectionError("gateway down")

    with pytest.raises(SnapshotFetchError):
        await cache.get(broken, force=True)
    assert await cache.get(broken) is good


@pytest.mark.asyncio
async def test_fetch_timeout_raises() -> None:
    cache = SnapshotCache(ttl_seconds=60, fetch_timeout=0.01)

    with pytest.raises(SnapshotFetchError, match="timed out"):
        await cache.get(_Loader(delay=1.0))
    assert cache.age is None
