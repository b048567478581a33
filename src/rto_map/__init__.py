"""
rto_map: district boundary resolution and interactive map engine for RTO
code pages.
"""

from .boundaries import BoundaryFeature, get_boundary_center
from .boundary_cache import BoundaryCache, CacheTier, MemoryTier, PersistentTier, boundary_cache_key
from .boundary_sources import NominatimClient, StaticBoundarySource
from .cancellation import CancellationToken
from .geo_utils import DistrictAliasResolver, normalize_district_name
from .map_state import InteractionState, InteractiveMap, MapState
from .map_view import MapRenderer, PlotlyMapRenderer, build_tooltip_lines, get_theme
from .marker_placement import CoordinateGeocoder, MarkerPlacement, place_markers
from .rto_data import RegionRecord, find_district_records, load_district_records, select_primary
from .storage import FileStore, KeyValueStore, MemoryStore

__version__ = "0.1.0"

__all__ = [
    'BoundaryCache',
    'BoundaryFeature',
    'CacheTier',
    'CancellationToken',
    'CoordinateGeocoder',
    'DistrictAliasResolver',
    'FileStore',
    'InteractionState',
    'InteractiveMap',
    'KeyValueStore',
    'MapRenderer',
    'MapState',
    'MarkerPlacement',
    'MemoryStore',
    'MemoryTier',
    'NominatimClient',
    'PersistentTier',
    'PlotlyMapRenderer',
    'RegionRecord',
    'StaticBoundarySource',
    'boundary_cache_key',
    'build_tooltip_lines',
    'find_district_records',
    'get_boundary_center',
    'get_theme',
    'load_district_records',
    'normalize_district_name',
    'place_markers',
    'select_primary',
]
