"""Tests for district alias resolution and name helpers."""

import json

import pytest

from rto_map.geo_utils import (
    TERRITORY_DISTRICT_ALIASES,
    DistrictAliasResolver,
    cache_key_part,
    normalize_district_name,
    territory_folder,
)


@pytest.fixture
def karnataka():
    return DistrictAliasResolver.for_territory('Karnataka')


def test_canonicalize_spelling_variant(karnataka):
    assert karnataka.canonicalize('Bagalkote') == 'Bagalkot'
    assert karnataka.canonicalize('Chikkaballapura') == 'Chikkaballapur'


def test_canonicalize_identity_and_merged_district(karnataka):
    assert karnataka.canonicalize('Mysuru') == 'Mysuru'
    assert karnataka.canonicalize('Vijayanagara') == 'Ballari'


def test_canonicalize_trims_whitespace(karnataka):
    assert karnataka.canonicalize('  Bagalkote ') == 'Bagalkot'


def test_canonicalize_is_case_sensitive(karnataka):
    assert karnataka.canonicalize('bagalkote') is None


def test_canonicalize_unknown_returns_none(karnataka):
    assert karnataka.canonicalize('Atlantis') is None
    assert karnataka.canonicalize('') is None
    assert karnataka.canonicalize(None) is None


def test_canonical_names_form_closed_set(karnataka):
    names = karnataka.canonical_names
    assert len(names) == 30
    assert set(names) == set(TERRITORY_DISTRICT_ALIASES['Karnataka'].values())
    for raw in karnataka.raw_names:
        assert karnataka.canonicalize(raw) in names


def test_region_to_district_returns_first_declared_raw_name():
    resolver = DistrictAliasResolver({'Bangalore': 'Bengaluru Urban', 'Bengaluru': 'Bengaluru Urban'})
    assert resolver.region_to_district('Bengaluru Urban') == 'Bangalore'


def test_region_to_district_prefers_identity_entry(karnataka):
    # identity entries are declared before the variants
    assert karnataka.region_to_district('Ballari') == 'Ballari'
    assert karnataka.region_to_district('Bagalkot') == 'Bagalkot'
    assert karnataka.region_to_district('Nowhere') is None


def test_unknown_territory_has_empty_table():
    resolver = DistrictAliasResolver.for_territory('Atlantis')
    assert len(resolver) == 0
    assert resolver.canonicalize('Anything') is None


def test_contains(karnataka):
    assert 'Bagalkote' in karnataka
    assert 'Atlantis' not in karnataka
    assert 42 not in karnataka


def test_from_config_file(tmp_path):
    config = tmp_path / 'config.json'
    config.write_text(json.dumps({'name': 'Goa', 'districtMapping': {'North Goa': 'North Goa', 'Panaji': 'North Goa'}}))

    resolver = DistrictAliasResolver.from_config_file(config)

    assert resolver.canonicalize('Panaji') == 'North Goa'
    assert resolver.canonical_names == ['North Goa']


def test_from_config_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        DistrictAliasResolver.from_config_file(tmp_path / 'missing.json')


def test_from_config_file_without_mapping(tmp_path):
    config = tmp_path / 'config.json'
    config.write_text(json.dumps({'name': 'Goa'}))
    with pytest.raises(ValueError):
        DistrictAliasResolver.from_config_file(config)


def test_normalize_district_name():
    assert normalize_district_name('  Bengaluru   Urban ') == 'bengaluru urban'
    assert normalize_district_name('') == ''
    assert normalize_district_name(None) == ''


def test_key_and_folder_helpers():
    assert cache_key_part('Bengaluru Urban') == 'bengaluru_urban'
    assert territory_folder('Andhra Pradesh') == 'andhra-pradesh'
