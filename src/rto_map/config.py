"""
Configuration constants for the RTO district map engine.

Paths, service endpoints, cache lifetimes and interaction timings. Every value
here is a default: caches, clients and maps accept keyword overrides.
"""

from pathlib import Path

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = PROJECT_ROOT / "data"
CACHE_DIR = PROJECT_ROOT / "data_cache"

# Dataset file names inside DATA_DIR/<territory-folder>/
BOUNDARIES_FILE = "boundaries.json"
COORDINATES_FILE = "coordinates.json"

# Client caches
BOUNDARY_CACHE_PREFIX = "osm_boundary_"
BOUNDARY_CACHE_TTL = 7 * 24 * 60 * 60  # seconds
GEOCODE_CACHE_PREFIX = "osm_geocode_"
GEOCODE_CACHE_TTL = 30 * 24 * 60 * 60  # seconds

# Nominatim (OpenStreetMap) lookup service
NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "RTOMap/1.0"
NOMINATIM_MIN_INTERVAL = 1.1  # seconds between requests
REQUEST_TIMEOUT = 30  # seconds
COUNTRY = "India"

# Interaction timings
CLICK_NAVIGATE_DELAY = 0.2  # seconds of click feedback before navigating
BOUNDARY_REQUEST_GAP = 0.1  # seconds between uncached boundary fetches

# Geometry
MARKER_COLLISION_OFFSET = 0.005  # degrees (~500 m) per prior marker at a location
CENTER_SAMPLE_POINTS = 10
INDIA_CENTER = (20.5937, 78.9629)

# Default map views per territory: centre (lat, lon) and zoom
STATE_VIEWS = {
    'Karnataka': {'center': (15.3173, 75.7139), 'zoom': 6},
    'Goa': {'center': (15.2993, 74.1240), 'zoom': 9},
}
DEFAULT_VIEW = {'center': INDIA_CENTER, 'zoom': 6}
DISTRICT_ZOOM = 9


def get_state_view(territory: str) -> dict:
    """Return the default centre/zoom for a territory, India-wide if unknown."""
    return dict(STATE_VIEWS.get(territory, DEFAULT_VIEW))
