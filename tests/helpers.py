"""Shared fakes and fixtures data for the rto_map tests."""

import asyncio
from typing import Dict, List, Optional

import requests

from rto_map.boundaries import BoundaryFeature
from rto_map.geo_utils import normalize_district_name
from rto_map.map_view import MapRenderer


def square_ring(lon: float, lat: float, size: float = 0.2) -> list:
    return [
        [lon, lat],
        [lon + size, lat],
        [lon + size, lat + size],
        [lon, lat + size],
        [lon, lat],
    ]


def feature_dict(name: str, lon: float = 75.0, lat: float = 15.0, geometry_type: str = 'Polygon', bbox=None) -> dict:
    if geometry_type == 'Polygon':
        coordinates = [square_ring(lon, lat)]
    elif geometry_type == 'MultiPolygon':
        coordinates = [[square_ring(lon, lat)], [square_ring(lon + 5, lat + 5)]]
    else:
        coordinates = [lon, lat]
    feature = {
        'type': 'Feature',
        'properties': {'name': name, 'districtName': name},
        'geometry': {'type': geometry_type, 'coordinates': coordinates},
    }
    if bbox is not None:
        feature['bbox'] = bbox
    return feature


def make_feature(name: str, lon: float = 75.0, lat: float = 15.0) -> BoundaryFeature:
    return BoundaryFeature.from_geojson(feature_dict(name, lon, lat))


class FakeStaticSource:
    """Stands in for StaticBoundarySource."""

    def __init__(self, features: Optional[Dict[str, BoundaryFeature]] = None, delay: float = 0.0, error: Exception = None):
        self.features = {normalize_district_name(k): v for k, v in (features or {}).items()}
        self.delay = delay
        self.error = error
        self.calls: List[str] = []
        self.cleared = 0

    async def lookup(self, territory: str, district: str) -> Optional[BoundaryFeature]:
        self.calls.append(district)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.features.get(normalize_district_name(district))

    async def load_all(self, territory: str) -> Dict[str, BoundaryFeature]:
        return {feature.name: feature for feature in self.features.values()}

    def clear(self) -> None:
        self.cleared += 1


class FakeRemote:
    """Stands in for NominatimClient.search_boundary."""

    def __init__(self, features: Optional[Dict[str, BoundaryFeature]] = None):
        self.features = features or {}
        self.calls: List[str] = []

    async def search_boundary(self, territory: str, district: str) -> Optional[BoundaryFeature]:
        self.calls.append(district)
        return self.features.get(district)


class FakeResponse:
    def __init__(self, payload=None, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """requests.Session replacement returning queued responses."""

    def __init__(self, responses: list):
        self.responses = list(responses)
        self.requests: List[dict] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append({'url': url, 'params': params, 'headers': headers, 'timeout': timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingRenderer(MapRenderer):
    """Renderer that remembers what it was asked to draw."""

    def __init__(self):
        self.boundaries: Dict[str, BoundaryFeature] = {}
        self.placeholders: Dict[str, tuple] = {}
        self.styles = {}
        self.markers = []
        self.marker_draws = 0
        self.tooltip: Optional[List[str]] = None
        self.tooltip_position = None
        self.notice: Optional[str] = None
        self.theme = None
        self.cleared = 0

    def draw_boundary(self, district, feature, style):
        self.boundaries[district] = feature
        self.styles[district] = style

    def draw_placeholder(self, district, center, style, message):
        self.placeholders[district] = (center, message)
        self.styles[district] = style

    def set_style(self, district, style):
        self.styles[district] = style

    def draw_markers(self, placements, current_code, theme):
        self.markers = list(placements)
        self.marker_draws += 1

    def clear_markers(self):
        self.markers = []

    def show_tooltip(self, lines, position):
        self.tooltip = list(lines)
        self.tooltip_position = position

    def move_tooltip(self, position):
        self.tooltip_position = position

    def hide_tooltip(self):
        self.tooltip = None

    def show_notice(self, message):
        self.notice = message

    def set_theme(self, theme):
        self.theme = theme

    def clear(self):
        self.boundaries.clear()
        self.placeholders.clear()
        self.styles.clear()
        self.markers = []
        self.cleared += 1
