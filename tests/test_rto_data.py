"""Tests for region records, primary selection and index loading."""

import json

import pytest

from rto_map.geo_utils import DistrictAliasResolver
from rto_map.rto_data import RegionRecord, find_district_records, load_district_records, select_primary


def record(code, hq=False, status='active', city=''):
    return RegionRecord(code=code, region=city or code, city=city, district='Bidar', status=status, is_district_headquarter=hq)


def test_primary_prefers_active_over_inactive_headquarters():
    records = [record('KA-38', hq=True, status='not-in-use'), record('KA-56')]
    assert select_primary(records).code == 'KA-56'


def test_primary_prefers_headquarters_among_active():
    records = [record('KA-39'), record('KA-56', hq=True), record('KA-38')]
    assert select_primary(records).code == 'KA-56'


def test_primary_breaks_ties_by_code():
    records = [record('KA-56'), record('KA-39'), record('KA-38', status='discontinued')]
    assert select_primary(records).code == 'KA-39'


def test_primary_of_empty_list():
    assert select_primary([]) is None


def test_primary_does_not_reorder_input():
    records = [record('KA-56'), record('KA-38', hq=True)]
    select_primary(records)
    assert [r.code for r in records] == ['KA-56', 'KA-38']


def test_unknown_status_counts_as_active():
    assert record('KA-38', status='').is_active
    assert record('KA-38', status='temporary').is_active
    assert not record('KA-38', status='not-in-use').is_active


def test_sub_location_falls_back_to_region():
    assert RegionRecord('KA-38', region='Bidar').sub_location == 'Bidar'
    assert RegionRecord('KA-39', region='Bidar', city='Bhalki').sub_location == 'Bhalki'


@pytest.fixture
def mapping():
    return {
        'Bidar': [record('KA-38')],
        'Bangalore': [record('KA-01')],
        'Bagalkot': [record('KA-29')],
    }


def test_find_records_exact_and_case_insensitive(mapping):
    assert [r.code for r in find_district_records(mapping, 'Bidar')] == ['KA-38']
    assert [r.code for r in find_district_records(mapping, ' bidar ')] == ['KA-38']


def test_find_records_through_aliases(mapping):
    resolver = DistrictAliasResolver({'Bangalore': 'Bengaluru Urban', 'Bagalkote': 'Bagalkot'})
    # map region id -> data district
    assert [r.code for r in find_district_records(mapping, 'Bengaluru Urban', resolver)] == ['KA-01']
    # raw variant -> canonical data district
    assert [r.code for r in find_district_records(mapping, 'Bagalkote', resolver)] == ['KA-29']


def test_find_records_miss(mapping):
    assert find_district_records(mapping, 'Atlantis') == []
    assert find_district_records({}, 'Bidar') == []


def test_find_records_returns_copy(mapping):
    found = find_district_records(mapping, 'Bidar')
    found.clear()
    assert len(mapping['Bidar']) == 1


def test_load_district_records(tmp_path):
    index = tmp_path / 'index.json'
    index.write_text(json.dumps([
        {'code': 'KA-39', 'region': 'Bhalki', 'city': 'Bhalki', 'district': 'Bidar', 'status': 'active'},
        {'code': 'KA-38', 'region': 'Bidar', 'city': 'Bidar', 'district': 'Bidar', 'isDistrictHeadquarter': True},
        {'code': 'KA-13', 'region': 'Hassan', 'district': 'Hassan', 'status': 'not-in-use'},
        {'region': 'Unknown', 'district': 'Hassan'},
    ]))

    grouped = load_district_records(index)

    assert sorted(grouped) == ['Bidar', 'Hassan']
    bidar = grouped['Bidar']
    assert [r.code for r in bidar] == ['KA-38', 'KA-39']
    assert bidar[0].is_headquarters
    assert bidar[0].status == 'active'
    assert not bidar[1].is_headquarters
    hassan = grouped['Hassan']
    assert [r.code for r in hassan] == ['KA-13']
    assert not hassan[0].is_active
    assert hassan[0].city == ''


def test_load_district_records_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_district_records(tmp_path / 'index.json')


def test_load_district_records_without_codes(tmp_path):
    index = tmp_path / 'index.json'
    index.write_text(json.dumps([{'region': 'Bidar', 'district': 'Bidar'}]))
    with pytest.raises(ValueError):
        load_district_records(index)


def test_primary_of_all_inactive_records_is_smallest_code():
    records = [record('KA-56', status='not-in-use'), record('KA-38', status='discontinued', hq=False), record('KA-39', status='not-in-use')]
    assert select_primary(records).code == 'KA-38'


def test_primary_with_plain_codes():
    assert select_primary([RegionRecord('B'), RegionRecord('A', is_district_headquarter=True)]).code == 'A'
