"""Tests for boundary parsing and centre approximation."""

import pytest

from rto_map.boundaries import BoundaryFeature, get_boundary_center
from rto_map.config import INDIA_CENTER

from helpers import feature_dict


def test_from_geojson_accepts_polygon_and_multipolygon():
    assert BoundaryFeature.from_geojson(feature_dict('Udupi')) is not None
    assert BoundaryFeature.from_geojson(feature_dict('Udupi', geometry_type='MultiPolygon')) is not None


@pytest.mark.parametrize('raw', [
    None,
    'Udupi',
    {'type': 'Feature', 'properties': {'name': 'Udupi'}},
    {'type': 'Feature', 'geometry': {'type': 'Polygon', 'coordinates': 'nope'}},
    feature_dict('Udupi', geometry_type='Point'),
])
def test_from_geojson_rejects_unusable_features(raw):
    assert BoundaryFeature.from_geojson(raw) is None


def test_name_prefers_district_name_property():
    raw = feature_dict('Udupi')
    raw['properties'] = {'name': 'Udupi District', 'districtName': 'Udupi'}
    assert BoundaryFeature.from_geojson(raw).name == 'Udupi'

    raw['properties'] = {'name': 'Udupi District'}
    assert BoundaryFeature.from_geojson(raw).name == 'Udupi District'


def test_center_uses_bbox_midpoint():
    feature = BoundaryFeature.from_geojson(feature_dict('Udupi', bbox=[74.0, 14.0, 76.0, 16.0]))
    assert get_boundary_center(feature) == (15.0, 75.0)


def test_center_averages_outer_ring_points():
    feature = BoundaryFeature.from_geojson(feature_dict('Udupi', lon=74.0, lat=14.0))
    # square ring of five points starting at (74, 14) with side 0.2
    lat, lon = get_boundary_center(feature)
    assert lat == pytest.approx((14.0 * 3 + 14.2 * 2) / 5)
    assert lon == pytest.approx((74.0 * 3 + 74.2 * 2) / 5)


def test_center_samples_at_most_ten_points():
    ring = [[float(i), 10.0] for i in range(20)]
    feature = BoundaryFeature('Long', {'type': 'Polygon', 'coordinates': [ring]})
    lat, lon = get_boundary_center(feature)
    assert lat == pytest.approx(10.0)
    assert lon == pytest.approx(4.5)


def test_center_of_multipolygon_uses_first_polygon():
    feature = BoundaryFeature.from_geojson(feature_dict('Udupi', lon=74.0, lat=14.0, geometry_type='MultiPolygon'))
    lat, lon = get_boundary_center(feature)
    assert 14.0 <= lat <= 14.2
    assert 74.0 <= lon <= 74.2


def test_center_fallbacks():
    assert get_boundary_center(None) == INDIA_CENTER
    empty = BoundaryFeature('Empty', {'type': 'Polygon', 'coordinates': []})
    assert get_boundary_center(empty) == INDIA_CENTER


@pytest.mark.parametrize('ring', [
    [[75.0], [76.0], [77.0]],
    [75.0, 15.0, 76.0],
    [[75.0, 15.0], [76.0]],
    [['east', 'north'], [76.0, 15.0]],
])
def test_center_of_malformed_ring_falls_back(ring):
    feature = BoundaryFeature('Broken', {'type': 'Polygon', 'coordinates': [ring]})
    assert get_boundary_center(feature) == INDIA_CENTER


def test_to_geojson_keeps_name_and_bbox():
    feature = BoundaryFeature.from_geojson(feature_dict('Udupi', bbox=[74.0, 14.0, 76.0, 16.0]))
    restored = BoundaryFeature.from_geojson(feature.to_geojson())
    assert restored.name == 'Udupi'
    assert restored.bbox == (74.0, 14.0, 76.0, 16.0)
