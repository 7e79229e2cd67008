from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from time import monotonic

from nonebot import logger

from rolecount.models import GuildSnapshot

SnapshotLoader = Callable[[], Awaitable[GuildSnapshot]]


class SnapshotFetchError(RuntimeError):
    pass


class SnapshotCache:
    """Keeps the latest guild snapshot for ``ttl_seconds``.

    Concurrent callers share one refresh: whoever takes the lock fetches, the
    rest re-check freshness once they get it and reuse the new snapshot.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        fetch_timeout: float | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self._lock = asyncio.Lock()
        self._snapshot: GuildSnapshot | None = None
        self._loaded_at = 0.0
        self._generation = 0

    @property
    def age(self) -> float | None:
        if self._snapshot is None:
            return None
        return self._clock() - self._loaded_at

    def _fresh(self) -> GuildSnapshot | None:
        if self._snapshot is None:
            return None
        if self._clock() - self._loaded_at >= self.ttl_seconds:
            return None
        return self._snapshot

    def invalidate(self) -> None:
        self._snapshot = None

    async def get(self, loader: SnapshotLoader, force: bool = False) -> GuildSnapshot:
        if not force:
            cached = self._fresh()
            if cached is not None:
                return cached

        generation = self._generation
        async with self._lock:
            cached = self._fresh()
            if cached is not None and (not force or self._generation != generation):
                return cached

            try:
                if self.fetch_timeout is None:
                    snapshot = await loader()
                else:
                    snapshot = await asyncio.wait_for(loader(), timeout=self.fetch_timeout)
            except asyncio.TimeoutError as exc:
                raise SnapshotFetchError(
                    f"member snapshot fetch timed out after {self.fetch_timeout}s"
                ) from exc
            except Exception as exc:
                raise SnapshotFetchError(f"member snapshot fetch failed: {exc}") from exc

            self._snapshot = snapshot
            self._loaded_at = self._clock()
            self._generation += 1
            logger.info(
                "Loaded snapshot for guild {}: {} members, {} roles",
                snapshot.guild_id,
                len(snapshot.members),
                len(snapshot.roles),
            )
            return snapshot
