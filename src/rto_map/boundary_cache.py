"""
Tiered district boundary cache.

Resolution order for a (territory, district) key:
1. Memory tier (session authority)
2. Persistent tier (client storage, 7 day TTL)
3. Static per-territory dataset
4. Nominatim lookup, at most once per key per session

Tiers 1-2 are ``CacheTier`` instances checked in priority order; a hit in a
lower tier is promoted into the tiers above it. A result from tier 3 or 4 is
written back to every cache tier. Concurrent requests for one key share a
single in-flight fetch.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

from .boundaries import BoundaryFeature
from .boundary_sources import NominatimClient, StaticBoundarySource
from .cancellation import CancellationToken, is_cancelled
from .config import BOUNDARY_CACHE_PREFIX, BOUNDARY_CACHE_TTL
from .geo_utils import cache_key_part
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


def boundary_cache_key(territory: str, district: str) -> str:
    """Normalized cache key: ``<territory>_<district>``, lowercase, underscores."""
    return f"{cache_key_part(territory)}_{cache_key_part(district)}"


def encode_feature(feature: BoundaryFeature) -> Dict[str, Any]:
    return {'feature': feature.to_geojson()}


def decode_feature(entry: Dict[str, Any]) -> Optional[BoundaryFeature]:
    return BoundaryFeature.from_geojson(entry.get('feature'))


class CacheTier(ABC):
    """One level of a tiered cache."""

    name = 'tier'

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def is_expired(self, entry: Any) -> bool:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryTier(CacheTier):
    """In-process cache; entries live until ``clear()``."""

    name = 'memory'

    def __init__(self):
        self._entries: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def is_expired(self, entry: Any) -> bool:
        return False

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class PersistentTier(CacheTier):
    """
    Client storage tier.

    Entries are stored under ``prefix + key`` as the encoded value plus an
    epoch-ms ``timestamp``. The default codec stores boundaries as
    ``{"feature": <GeoJSON Feature>, "timestamp": ..}``. An entry that is
    expired, or that ``decode`` rejects, is deleted and reported as a miss.
    Storage errors never propagate.
    """

    name = 'persistent'

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        prefix: str = BOUNDARY_CACHE_PREFIX,
        ttl: float = BOUNDARY_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        encode: Callable[[Any], Dict[str, Any]] = encode_feature,
        decode: Callable[[Dict[str, Any]], Optional[Any]] = decode_feature,
    ):
        self.store = store if store is not None else MemoryStore()
        self.prefix = prefix
        self.ttl = ttl
        self.clock = clock
        self.encode = encode
        self.decode = decode

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def is_expired(self, entry: Any) -> bool:
        timestamp = entry.get('timestamp') if isinstance(entry, dict) else None
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return True
        return self._now_ms() - timestamp > self.ttl * 1000

    def get(self, key: str) -> Optional[Any]:
        storage_key = self.prefix + key
        try:
            entry = self.store.get_item(storage_key)
        except (OSError, ValueError) as e:
            logger.warning(f"Persistent cache read failed for {storage_key}: {e}")
            self._discard(storage_key)
            return None

        if entry is None:
            return None

        if self.is_expired(entry):
            logger.debug(f"Purging expired cache entry {storage_key}")
            self._discard(storage_key)
            return None

        value = self.decode(entry)
        if value is None:
            logger.warning(f"Purging malformed cache entry {storage_key}")
            self._discard(storage_key)
            return None

        return value

    def set(self, key: str, value: Any) -> None:
        storage_key = self.prefix + key
        try:
            entry = dict(self.encode(value), timestamp=self._now_ms())
            self.store.set_item(storage_key, entry)
        except (OSError, TypeError, ValueError) as e:
            # Full or read-only storage only costs a refetch next session
            logger.warning(f"Persistent cache write failed for {storage_key}: {e}")

    def clear(self) -> None:
        try:
            keys = self.store.keys()
        except OSError as e:
            logger.warning(f"Persistent cache listing failed: {e}")
            return
        for storage_key in keys:
            if storage_key.startswith(self.prefix):
                self._discard(storage_key)

    def _discard(self, storage_key: str) -> None:
        try:
            self.store.remove_item(storage_key)
        except OSError as e:
            logger.warning(f"Persistent cache delete failed for {storage_key}: {e}")


class BoundaryCache:
    """
    Session-scoped boundary cache manager.

    One instance is shared by every map in a session. ``clear_all()`` resets
    every tier plus the static dataset memo and the remote lookup ledger.
    """

    def __init__(
        self,
        tiers: Optional[List[CacheTier]] = None,
        static_source: Optional[StaticBoundarySource] = None,
        remote: Optional[NominatimClient] = None,
    ):
        self.tiers: List[CacheTier] = tiers if tiers is not None else [MemoryTier(), PersistentTier()]
        self.static_source = static_source
        self.remote = remote
        self._inflight: Dict[str, asyncio.Task] = {}
        self._remote_attempted: Set[str] = set()
        self._generation = 0

    def get_cached_boundary(self, territory: str, district: str) -> Optional[BoundaryFeature]:
        """Synchronous lookup in the cache tiers only."""
        return self._lookup_tiers(boundary_cache_key(territory, district))

    async def resolve_boundary(
        self,
        territory: str,
        district: str,
        token: Optional[CancellationToken] = None,
    ) -> Optional[BoundaryFeature]:
        """
        Resolve a district boundary through every tier.

        Returns None on a miss, on any failure, or when ``token`` was cancelled
        while the lookup was in flight.
        """
        key = boundary_cache_key(territory, district)

        try:
            feature = self._lookup_tiers(key)
            if feature is None:
                task = self._inflight.get(key)
                if task is None:
                    task = asyncio.ensure_future(self._fetch(territory, district, key))
                    self._inflight[key] = task
                    task.add_done_callback(lambda done, key=key: self._forget(key, done))
                else:
                    logger.debug(f"Joining in-flight boundary fetch for {key}")
                feature = await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Boundary resolution failed for {district}, {territory}: {e}")
            return None

        if is_cancelled(token):
            logger.debug(f"Discarding boundary for {key}: caller cancelled")
            return None
        return feature

    async def load_all_boundaries(self, territory: str) -> Dict[str, BoundaryFeature]:
        """Load a whole territory dataset into the memory tier."""
        if self.static_source is None:
            return {}
        try:
            features = await self.static_source.load_all(territory)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Loading all boundaries failed for {territory}: {e}")
            return {}

        for district, feature in features.items():
            self.tiers[0].set(boundary_cache_key(territory, district), feature)
        return features

    def clear_all(self) -> None:
        for tier in self.tiers:
            tier.clear()
        if self.static_source is not None:
            self.static_source.clear()
        self._remote_attempted.clear()
        self._inflight.clear()
        self._generation += 1
        logger.info("Cleared all boundary caches")

    def _lookup_tiers(self, key: str) -> Optional[BoundaryFeature]:
        for index, tier in enumerate(self.tiers):
            feature = tier.get(key)
            if feature is not None:
                for upper in self.tiers[:index]:
                    upper.set(key, feature)
                return feature
        return None

    async def _fetch(self, territory: str, district: str, key: str) -> Optional[BoundaryFeature]:
        generation = self._generation
        feature = None

        if self.static_source is not None:
            feature = await self.static_source.lookup(territory, district)

        if feature is None and self.remote is not None and key not in self._remote_attempted:
            self._remote_attempted.add(key)
            feature = await self.remote.search_boundary(territory, district)

        if feature is None:
            logger.info(f"No boundary available for {district}, {territory}")
            return None

        if generation == self._generation:
            for tier in self.tiers:
                tier.set(key, feature)
        return feature

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Boundary fetch for {key} failed: {task.exception()}")
