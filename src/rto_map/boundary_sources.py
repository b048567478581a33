"""
Boundary sources behind the caches.

- StaticBoundarySource: pre-generated per-territory boundaries.json datasets
  read from a data directory or fetched over HTTP, memoized per territory
- NominatimClient: best-effort OpenStreetMap lookup, rate limited, no retries

Neither source raises on I/O trouble: failures are logged and reported as None.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from .boundaries import BoundaryFeature
from .config import (
    BOUNDARIES_FILE,
    COUNTRY,
    DATA_DIR,
    NOMINATIM_BASE_URL,
    NOMINATIM_MIN_INTERVAL,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from .geo_utils import normalize_district_name, territory_folder

logger = logging.getLogger(__name__)


class StaticBoundarySource:
    """
    Per-territory boundary dataset, loaded once per session.

    The dataset is a GeoJSON FeatureCollection at
    ``<root>/<territory-folder>/boundaries.json`` where ``root`` is either a
    local directory or a base URL. A missing or unreadable dataset is memoized
    as unavailable so it is not requested again until ``clear()``.
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
        self.base_url = base_url
        self.session = session or requests.Session()
        self.timeout = timeout
        self._datasets: Dict[str, Optional[Dict[str, BoundaryFeature]]] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self.load_count = 0

    def location(self, territory: str) -> str:
        folder = territory_folder(territory)
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{folder}/{BOUNDARIES_FILE}"
        return str(self.data_dir / folder / BOUNDARIES_FILE)

    def is_loaded(self, territory: str) -> bool:
        return territory_folder(territory) in self._datasets

    async def load(self, territory: str) -> Optional[Dict[str, BoundaryFeature]]:
        """
        Load (or return the memoized) dataset for a territory.

        Returns:
            Dict mapping normalized district name -> feature, or None if the
            dataset is unavailable
        """
        folder = territory_folder(territory)
        if folder in self._datasets:
            return self._datasets[folder]

        # Concurrent callers share one read
        task = self._pending.get(folder)
        if task is None:
            task = asyncio.ensure_future(self._load_dataset(territory))
            self._pending[folder] = task
        try:
            dataset = await asyncio.shield(task)
        finally:
            if task.done():
                self._pending.pop(folder, None)

        self._datasets.setdefault(folder, dataset)
        return self._datasets[folder]

    async def _load_dataset(self, territory: str) -> Optional[Dict[str, BoundaryFeature]]:
        location = self.location(territory)
        self.load_count += 1
        try:
            collection = await asyncio.to_thread(self._read_collection, location)
        except requests.exceptions.RequestException as e:
            logger.warning(f"✗ Boundary dataset request failed for {territory}: {e}")
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"✗ Boundary dataset unreadable for {territory}: {e}")
            return None

        if collection is None:
            logger.info(f"No boundary dataset for {territory} at {location}")
            return None

        dataset = index_features(collection.get('features', []))
        logger.info(f"✓ Loaded {len(dataset)} district boundaries for {territory}")
        return dataset

    def _read_collection(self, location: str) -> Optional[Dict[str, Any]]:
        if self.base_url:
            response = self.session.get(location, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            collection = response.json()
        else:
            path = Path(location)
            if not path.exists():
                return None
            with open(path, 'r', encoding='utf-8') as f:
                collection = json.load(f)

        if not isinstance(collection, dict) or not isinstance(collection.get('features'), list):
            raise ValueError(f"Not a FeatureCollection: {location}")
        return collection

    async def lookup(self, territory: str, district: str) -> Optional[BoundaryFeature]:
        """Find one district in the territory dataset (case-insensitive)."""
        dataset = await self.load(territory)
        if not dataset:
            return None
        return dataset.get(normalize_district_name(district))

    async def load_all(self, territory: str) -> Dict[str, BoundaryFeature]:
        """All features of a territory keyed by district name as published."""
        dataset = await self.load(territory)
        if not dataset:
            return {}
        result = {}
        for feature in dataset.values():
            result.setdefault(feature.name, feature)
        return result

    def clear(self) -> None:
        self._datasets.clear()
        self._pending.clear()


def index_features(features: List[Any]) -> Dict[str, BoundaryFeature]:
    """
    Build a lookup dictionary from GeoJSON features.

    Features are indexed under both ``properties.districtName`` and
    ``properties.name`` (normalized). Invalid geometries are skipped.
    """
    lookup: Dict[str, BoundaryFeature] = {}
    skipped = 0

    for raw in features:
        feature = BoundaryFeature.from_geojson(raw)
        if feature is None:
            skipped += 1
            continue
        for key in ('districtName', 'name'):
            normalized = normalize_district_name(feature.properties.get(key, ''))
            if normalized:
                lookup.setdefault(normalized, feature)

    if skipped:
        logger.warning(f"Skipped {skipped} features without Polygon/MultiPolygon geometry")
    return lookup


class NominatimClient:
    """
    Best-effort boundary and place lookup against Nominatim.

    Requests are spaced at least ``min_interval`` seconds apart and identify
    the client with a generic User-Agent. There are no retries: a network
    error, HTTP error or undecodable body ends the lookup with None.
    """

    def __init__(
        self,
        base_url: str = NOMINATIM_BASE_URL,
        user_agent: str = USER_AGENT,
        min_interval: float = NOMINATIM_MIN_INTERVAL,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        country: str = COUNTRY,
    ):
        self.base_url = base_url.rstrip('/')
        self.user_agent = user_agent
        self.min_interval = min_interval
        self.timeout = timeout
        self.session = session or requests.Session()
        self.country = country
        self._lock: Optional[asyncio.Lock] = None
        self._last_request = 0.0
        self.request_count = 0

    def boundary_queries(self, territory: str, district: str) -> List[str]:
        """Primary query plus the one alternate variant."""
        return [
            f"{district} district, {territory}, {self.country}",
            f"{district}, {territory}, {self.country}",
        ]

    async def search_boundary(self, territory: str, district: str) -> Optional[BoundaryFeature]:
        """
        Look up a district polygon.

        The alternate query is only tried when the first one succeeds but
        returns no polygon.
        """
        for query in self.boundary_queries(territory, district):
            data = await self._search({
                'q': query,
                'format': 'geojson',
                'polygon_geojson': '1',
                'limit': '1',
            })
            if data is None:
                return None

            for raw in data.get('features') or []:
                feature = BoundaryFeature.from_geojson(raw)
                if feature is not None:
                    feature.properties['districtName'] = district
                    feature.name = district
                    logger.info(f"✓ Nominatim boundary for {district}, {territory} via '{query}'")
                    return feature

            logger.debug(f"No polygon for query '{query}'")

        logger.info(f"✗ No Nominatim boundary for {district}, {territory}")
        return None

    async def geocode(self, place: str, district: str, territory: str) -> Optional[Tuple[float, float]]:
        """Point lookup for a place within a district; returns (lat, lon) or None."""
        data = await self._search({
            'q': f"{place}, {district}, {territory}, {self.country}",
            'format': 'geojson',
            'limit': '1',
        })
        if data is None:
            return None

        for raw in data.get('features') or []:
            geometry = raw.get('geometry') if isinstance(raw, dict) else None
            if not isinstance(geometry, dict) or geometry.get('type') != 'Point':
                continue
            try:
                lon, lat = geometry['coordinates'][:2]
                return (float(lat), float(lon))
            except (KeyError, TypeError, ValueError):
                continue
        return None

    async def geocode_record(self, record, district: str, territory: str) -> Optional[Tuple[float, float]]:
        """Geocode function for marker placement: looks up the record's city."""
        return await self.geocode(record.city or record.region, district, territory)

    async def _search(self, params: Dict[str, str]) -> Optional[Dict[str, Any]]:
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            wait = self.min_interval - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()
            self.request_count += 1

            try:
                response = await asyncio.to_thread(
                    self.session.get,
                    f"{self.base_url}/search",
                    params=params,
                    headers={'User-Agent': self.user_agent, 'Accept': 'application/json'},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
            except requests.exceptions.RequestException as e:
                logger.warning(f"Nominatim request failed for '{params.get('q')}': {e}")
                return None
            except ValueError as e:
                logger.warning(f"Invalid JSON from Nominatim for '{params.get('q')}': {e}")
                return None

        if not isinstance(data, dict):
            return None
        return data
