"""
RTO records per district and primary-record selection.

A territory's index.json lists every RTO office; the map only needs the
district grouping, each office's status and whether it is the district
headquarters.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from .geo_utils import DistrictAliasResolver, normalize_district_name

logger = logging.getLogger(__name__)

ACTIVE_STATUS = 'active'
INACTIVE_STATUSES = ('not-in-use', 'discontinued')


@dataclass(frozen=True)
class RegionRecord:
    """One RTO office within a district."""

    code: str
    region: str = ''
    city: str = ''
    district: str = ''
    status: str = ACTIVE_STATUS
    is_district_headquarter: bool = False

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES

    @property
    def is_headquarters(self) -> bool:
        return self.is_district_headquarter

    @property
    def sub_location(self) -> str:
        """Place used for marker geocoding and collision grouping."""
        return self.city or self.region


def primary_sort_key(record: RegionRecord):
    # active first, then headquarters, then code
    return (not record.is_active, not record.is_headquarters, record.code)


def select_primary(records: Iterable[RegionRecord]) -> Optional[RegionRecord]:
    """
    Pick the record a district click navigates to.

    Ordering: active before inactive, headquarters before others, then code
    ascending. The input is never modified.
    """
    ordered = sorted(records, key=primary_sort_key)
    return ordered[0] if ordered else None


def find_district_records(
    district_records: Mapping[str, List[RegionRecord]],
    district: str,
    aliases: Optional[DistrictAliasResolver] = None,
) -> List[RegionRecord]:
    """
    Records for a district name as it appears on the map.

    Matching strategy:
    1. Exact key
    2. Case-insensitive key
    3. Alias resolution (map region id -> data district name, and raw name ->
       region id)
    """
    if not district_records or not isinstance(district, str):
        return []

    records = district_records.get(district)
    if records:
        return list(records)

    wanted = normalize_district_name(district)
    for key, value in district_records.items():
        if value and normalize_district_name(key) == wanted:
            return list(value)

    if aliases is not None:
        for candidate in (aliases.region_to_district(district), aliases.canonicalize(district)):
            if candidate and district_records.get(candidate):
                return list(district_records[candidate])

    return []


def load_district_records(index_path: Union[str, Path]) -> Dict[str, List[RegionRecord]]:
    """
    Load a territory index.json into a district -> records mapping.

    Rows without a code are dropped, records are sorted by code and rows
    without a district are grouped under "".

    Raises:
        FileNotFoundError: If index_path does not exist
        ValueError: If the file is not a list of records
    """
    path = Path(index_path)
    if not path.exists():
        logger.error(f"Index file not found: {path}")
        raise FileNotFoundError(f"Index file does not exist: {path}")

    df = pd.read_json(path, orient='records', dtype=False)
    if df.empty:
        logger.warning(f"No records in {path}")
        return {}
    if 'code' not in df.columns:
        raise ValueError(f"Index has no 'code' column: {path}")

    for column, default in [('region', ''), ('city', ''), ('district', ''), ('status', ACTIVE_STATUS)]:
        if column not in df.columns:
            df[column] = default
        df[column] = df[column].fillna(default).astype(str).str.strip()

    if 'isDistrictHeadquarter' in df.columns:
        df['isDistrictHeadquarter'] = df['isDistrictHeadquarter'].fillna(False).astype(bool)
    else:
        df['isDistrictHeadquarter'] = False

    pre_rows = len(df)
    df = df[df['code'].notna()].copy()
    df['code'] = df['code'].astype(str).str.strip()
    df = df[df['code'] != '']
    if len(df) != pre_rows:
        logger.warning(f"Dropped {pre_rows - len(df)} rows without a code from {path.name}")

    df = df.sort_values('code', kind='mergesort')
    df = df[['code', 'region', 'city', 'district', 'status', 'isDistrictHeadquarter']]

    grouped: Dict[str, List[RegionRecord]] = {}
    for district, group in df.groupby('district', sort=True):
        grouped[str(district)] = [
            RegionRecord(
                code=row.code,
                region=row.region,
                city=row.city,
                district=row.district,
                status=row.status or ACTIVE_STATUS,
                is_district_headquarter=bool(row.isDistrictHeadquarter),
            )
            for row in group.itertuples(index=False)
        ]

    logger.info(f"✓ Loaded {len(df)} records across {len(grouped)} districts from {path.name}")
    return grouped
