"""
District boundary features and centre approximation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .config import CENTER_SAMPLE_POINTS, INDIA_CENTER

logger = logging.getLogger(__name__)

ACCEPTED_GEOMETRY_TYPES = ('Polygon', 'MultiPolygon')

LatLon = Tuple[float, float]
BBox = Tuple[float, float, float, float]


@dataclass
class BoundaryFeature:
    """
    A district outline with its metadata.

    ``bbox`` is (min_lon, min_lat, max_lon, max_lat) as GeoJSON orders it.
    """

    name: str
    geometry: Dict[str, Any]
    properties: Dict[str, Any] = field(default_factory=dict)
    bbox: Optional[BBox] = None

    @property
    def geometry_type(self) -> str:
        return self.geometry.get('type', '')

    @classmethod
    def from_geojson(cls, obj: Any) -> Optional["BoundaryFeature"]:
        """
        Parse a GeoJSON Feature dict.

        Returns None unless the geometry is a Polygon or MultiPolygon with a
        coordinates list.
        """
        if not isinstance(obj, dict):
            return None

        geometry = obj.get('geometry')
        if not isinstance(geometry, dict):
            return None
        if geometry.get('type') not in ACCEPTED_GEOMETRY_TYPES:
            return None
        if not isinstance(geometry.get('coordinates'), list):
            return None

        props = obj.get('properties')
        props = dict(props) if isinstance(props, dict) else {}
        name = props.get('districtName') or props.get('name') or ''

        bbox = _parse_bbox(obj.get('bbox'))
        return cls(name=str(name), geometry=geometry, properties=props, bbox=bbox)

    def to_geojson(self) -> Dict[str, Any]:
        feature: Dict[str, Any] = {
            'type': 'Feature',
            'properties': dict(self.properties, name=self.properties.get('name', self.name)),
            'geometry': self.geometry,
        }
        if self.bbox is not None:
            feature['bbox'] = list(self.bbox)
        return feature

    def polygons(self) -> List[list]:
        """Polygons as lists of rings; a Polygon yields a single entry."""
        coords = self.geometry.get('coordinates') or []
        if self.geometry_type == 'Polygon':
            return [coords] if coords else []
        return [polygon for polygon in coords if polygon]

    def outer_ring(self) -> List[list]:
        """Outer ring of the (first) polygon, or [] if there is none."""
        polygons = self.polygons()
        if not polygons or not polygons[0]:
            return []
        return polygons[0][0]


def _parse_bbox(value: Any) -> Optional[BBox]:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return None
    try:
        min_lon, min_lat, max_lon, max_lat = (float(v) for v in value)
    except (TypeError, ValueError):
        return None
    return (min_lon, min_lat, max_lon, max_lat)


def get_boundary_center(feature: Optional[BoundaryFeature]) -> LatLon:
    """
    Approximate centre of a boundary as (lat, lon).

    Strategy:
    1. Bounding box midpoint if a bbox is present
    2. Average of the first few outer ring coordinates
    3. India centroid when there is no usable geometry
    """
    if feature is None:
        return INDIA_CENTER

    if feature.bbox is not None:
        min_lon, min_lat, max_lon, max_lat = feature.bbox
        return ((min_lat + max_lat) / 2, (min_lon + max_lon) / 2)

    ring = feature.outer_ring()
    if ring:
        try:
            sample = np.asarray(ring[:CENTER_SAMPLE_POINTS], dtype=float)
        except (TypeError, ValueError):
            sample = None
        if sample is None or sample.ndim != 2 or sample.shape[1] < 2:
            logger.warning(f"Malformed ring coordinates for '{feature.name}', using fallback centre")
            return INDIA_CENTER
        lon, lat = sample[:, :2].mean(axis=0)
        return (float(lat), float(lon))

    return INDIA_CENTER
