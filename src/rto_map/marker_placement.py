"""
Numbered marker placement for districts with several RTO offices.

Markers are numbered by code order. Geocode calls for a batch run together,
but results are applied strictly in code order so that collision offsets are
reproducible: the k-th marker accepted at a sub-location is shifted by
k * offset degrees on both axes.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

import requests

from .boundary_cache import CacheTier, MemoryTier, PersistentTier
from .cancellation import CancellationToken, is_cancelled
from .config import (
    COORDINATES_FILE,
    DATA_DIR,
    GEOCODE_CACHE_PREFIX,
    GEOCODE_CACHE_TTL,
    MARKER_COLLISION_OFFSET,
    REQUEST_TIMEOUT,
)
from .geo_utils import territory_folder
from .rto_data import RegionRecord
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]
GeocodeFn = Callable[[RegionRecord, str, str], Awaitable[Optional[LatLon]]]


@dataclass(frozen=True)
class MarkerPlacement:
    record: RegionRecord
    lat: float
    lon: float
    number: int

    @property
    def coords(self) -> LatLon:
        return (self.lat, self.lon)


async def _safe_geocode(geocode_fn: GeocodeFn, record: RegionRecord, district: str, territory: str) -> Optional[LatLon]:
    try:
        coords = await geocode_fn(record, district, territory)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"Geocoding failed for {record.code} ({record.sub_location}): {e}")
        return None
    if coords is None:
        return None
    try:
        lat, lon = coords
        return (float(lat), float(lon))
    except (TypeError, ValueError):
        logger.warning(f"Geocoder returned invalid coordinates for {record.code}: {coords!r}")
        return None


async def place_markers(
    records: Sequence[RegionRecord],
    geocode_fn: GeocodeFn,
    district: str = '',
    territory: str = '',
    token: Optional[CancellationToken] = None,
    offset: float = MARKER_COLLISION_OFFSET,
) -> Optional[List[MarkerPlacement]]:
    """
    Place numbered markers for a district's records.

    Args:
        records: Records of one district (any order)
        geocode_fn: async (record, district, territory) -> (lat, lon) | None
        district: District context passed to the geocoder
        territory: Territory context passed to the geocoder
        token: Cancellation token for the caller's identity
        offset: Degrees added per earlier marker at the same sub-location

    Returns:
        Placements in code order ([] for fewer than two records), or None if
        the token was cancelled before the batch completed
    """
    if len(records) < 2:
        return []

    ordered = sorted(records, key=lambda r: r.code)

    if is_cancelled(token):
        return None

    results = await asyncio.gather(
        *(_safe_geocode(geocode_fn, record, district, territory) for record in ordered)
    )

    if is_cancelled(token):
        logger.debug(f"Discarding marker batch for {district}: identity changed")
        return None

    placements: List[MarkerPlacement] = []
    seen_at_location: Dict[str, int] = {}

    for number, (record, coords) in enumerate(zip(ordered, results), start=1):
        if coords is None:
            logger.info(f"No coordinates for {record.code}, skipping marker")
            continue

        location = record.sub_location.strip().lower()
        prior = seen_at_location.get(location, 0)
        seen_at_location[location] = prior + 1

        lat, lon = coords
        shift = prior * offset
        placements.append(MarkerPlacement(record=record, lat=lat + shift, lon=lon + shift, number=number))

    logger.info(f"Placed {len(placements)}/{len(ordered)} markers for {district or 'district'}")
    return placements


def _encode_coords(coords: LatLon) -> Dict[str, Any]:
    lat, lon = coords
    return {'lat': lat, 'lon': lon}


def geocode_persistent_tier(store: Optional[KeyValueStore] = None, clock: Callable[[], float] = time.time) -> PersistentTier:
    """Persistent tier for geocoded points: ``osm_geocode_<code>``, 30 day TTL."""
    return PersistentTier(
        store=store,
        prefix=GEOCODE_CACHE_PREFIX,
        ttl=GEOCODE_CACHE_TTL,
        clock=clock,
        encode=_encode_coords,
        decode=_entry_coords,
    )


class CoordinateGeocoder:
    """
    Geocode function for marker placement, backed by per-territory
    coordinates.json datasets and a tiered point cache.

    Dataset layout: ``{"coordinates": {"KA-01": {"lat": .., "lon": ..,
    "displayName": ".."}}}`` at ``<root>/<territory-folder>/coordinates.json``
    where ``root`` is a local directory or a base URL. Each dataset is read
    once, off the event loop; a missing or unreadable dataset is remembered as
    unavailable until ``clear()``.

    Lookup order for a record code:
    1. Memory tier
    2. Dataset entry for the code (written back to every tier)
    3. Persistent tier (promoted to memory)
    4. Dataset display name containing both city and district, then city
    5. Optional remote point lookup, at most once per code per session
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        tiers: Optional[List[CacheTier]] = None,
        remote=None,
    ):
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
        self.base_url = base_url
        self.session = session or requests.Session()
        self.timeout = timeout
        self.tiers = tiers if tiers is not None else [MemoryTier(), geocode_persistent_tier()]
        self.remote = remote
        self._coordinates: Dict[str, Optional[Dict[str, Any]]] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._remote_attempted: Set[str] = set()
        self.load_count = 0

    def location(self, territory: str) -> str:
        folder = territory_folder(territory)
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{folder}/{COORDINATES_FILE}"
        return str(self.data_dir / folder / COORDINATES_FILE)

    async def load_coordinates(self, territory: str) -> Optional[Dict[str, Any]]:
        """Load (or return the memoized) code -> entry mapping for a territory."""
        folder = territory_folder(territory)
        if folder in self._coordinates:
            return self._coordinates[folder]

        task = self._pending.get(folder)
        if task is None:
            task = asyncio.ensure_future(self._load_dataset(territory))
            self._pending[folder] = task
        try:
            coordinates = await asyncio.shield(task)
        finally:
            if task.done():
                self._pending.pop(folder, None)

        self._coordinates.setdefault(folder, coordinates)
        return self._coordinates[folder]

    async def _load_dataset(self, territory: str) -> Optional[Dict[str, Any]]:
        location = self.location(territory)
        self.load_count += 1
        try:
            coordinates = await asyncio.to_thread(self._read_coordinates, location)
        except requests.exceptions.RequestException as e:
            logger.warning(f"✗ Coordinates request failed for {territory}: {e}")
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"✗ Failed to read coordinates for {territory}: {e}")
            return None

        if coordinates is None:
            logger.info(f"No coordinates file for {territory} at {location}")
            return None
        logger.info(f"✓ Loaded {len(coordinates)} coordinates for {territory}")
        return coordinates

    def _read_coordinates(self, location: str) -> Optional[Dict[str, Any]]:
        if self.base_url:
            response = self.session.get(location, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()
        else:
            path = Path(location)
            if not path.exists():
                return None
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)

        if not isinstance(data, dict) or not isinstance(data.get('coordinates'), dict):
            raise ValueError(f"No 'coordinates' object in {location}")
        return data['coordinates']

    async def load_all(self, territory: str) -> Dict[str, LatLon]:
        """Every valid dataset point for a territory, keyed by code; fills the memory tier."""
        coordinates = await self.load_coordinates(territory)
        points: Dict[str, LatLon] = {}
        for code, entry in (coordinates or {}).items():
            coords = _entry_coords(entry)
            if coords is None:
                continue
            points[code] = coords
            if self.tiers:
                self.tiers[0].set(code.lower(), coords)
        return points

    async def __call__(self, record: RegionRecord, district: str, territory: str) -> Optional[LatLon]:
        code = record.code.upper()
        key = code.lower()

        if self.tiers:
            coords = self.tiers[0].get(key)
            if coords is not None:
                return coords

        coordinates = await self.load_coordinates(territory)
        if coordinates:
            coords = _entry_coords(coordinates.get(code))
            if coords is not None:
                self._store(key, coords)
                return coords

        for index, tier in enumerate(self.tiers[1:], start=1):
            coords = tier.get(key)
            if coords is not None:
                for upper in self.tiers[:index]:
                    upper.set(key, coords)
                return coords

        if coordinates:
            coords = _match_display_name(coordinates, record.sub_location, district)
            if coords is not None:
                return coords

        if self.remote is not None and key not in self._remote_attempted:
            self._remote_attempted.add(key)
            coords = await self.remote.geocode_record(record, district, territory)
            if coords is not None:
                self._store(key, coords)
                return coords
        return None

    def _store(self, key: str, coords: LatLon) -> None:
        for tier in self.tiers:
            tier.set(key, coords)

    def clear(self) -> None:
        """Drop cached points, memoized datasets and the remote ledger."""
        for tier in self.tiers:
            tier.clear()
        self._coordinates.clear()
        self._pending.clear()
        self._remote_attempted.clear()


def _match_display_name(coordinates: Dict[str, Any], city: str, district: str) -> Optional[LatLon]:
    city = city.lower()
    if not city:
        return None
    district_lower = district.lower()

    candidates = [e for e in coordinates.values() if isinstance(e, dict) and city in str(e.get('displayName', '')).lower()]
    for entry in candidates:
        if district_lower and district_lower in str(entry.get('displayName', '')).lower():
            return _entry_coords(entry)
    if candidates:
        return _entry_coords(candidates[0])
    return None


def _entry_coords(entry: Any) -> Optional[LatLon]:
    try:
        return (float(entry['lat']), float(entry['lon']))
    except (KeyError, TypeError, ValueError):
        return None
