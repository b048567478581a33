"""
District naming utilities for RTO territory maps.

Handles:
- District name normalization for case-insensitive matching
- Per-territory district alias tables (data name -> map region id)
- Forward and reverse alias resolution
- Cache key and dataset folder naming
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# District alias tables per territory
# Format: DATA_NAME -> MAP_REGION_ID
# Declaration order matters: reverse lookup returns the first raw name declared
# for a region id.
TERRITORY_DISTRICT_ALIASES: Dict[str, Dict[str, str]] = {
    'Karnataka': {
        # Identity mappings - district name matches the map region id
        'Bagalkot': 'Bagalkot',
        'Ballari': 'Ballari',
        'Belagavi': 'Belagavi',
        'Bengaluru Rural': 'Bengaluru Rural',
        'Bengaluru Urban': 'Bengaluru Urban',
        'Bidar': 'Bidar',
        'Chamarajanagar': 'Chamarajanagar',
        'Chikkaballapur': 'Chikkaballapur',
        'Chikkamagaluru': 'Chikkamagaluru',
        'Chitradurga': 'Chitradurga',
        'Dakshina Kannada': 'Dakshina Kannada',
        'Davanagere': 'Davanagere',
        'Dharwad': 'Dharwad',
        'Gadag': 'Gadag',
        'Hassan': 'Hassan',
        'Haveri': 'Haveri',
        'Kalaburagi': 'Kalaburagi',
        'Kodagu': 'Kodagu',
        'Kolar': 'Kolar',
        'Koppal': 'Koppal',
        'Mandya': 'Mandya',
        'Mysuru': 'Mysuru',
        'Raichur': 'Raichur',
        'Ramanagara': 'Ramanagara',
        'Shivamogga': 'Shivamogga',
        'Tumakuru': 'Tumakuru',
        'Udupi': 'Udupi',
        'Uttara Kannada': 'Uttara Kannada',
        'Vijayapura': 'Vijayapura',
        'Yadgir': 'Yadgir',

        # Spelling variants
        'Bagalkote': 'Bagalkot',
        'Chikkaballapura': 'Chikkaballapur',

        # Newer district carved from Ballari, drawn as its parent
        'Vijayanagara': 'Ballari',
    },
    'Goa': {
        'North Goa': 'North Goa',
        'South Goa': 'South Goa',
    },
}


def normalize_district_name(name: str) -> str:
    """
    Normalize district name for case-insensitive matching.

    Lowercases, trims and collapses internal whitespace. Returns "" for
    blank or non-string input.
    """
    if not isinstance(name, str) or not name.strip():
        return ""
    return re.sub(r'\s+', ' ', name.strip().lower())


def cache_key_part(name: str) -> str:
    """Lowercase a name and replace whitespace runs with underscores."""
    return re.sub(r'\s+', '_', str(name).lower())


def territory_folder(territory: str) -> str:
    """Dataset folder name for a territory ("Andhra Pradesh" -> "andhra-pradesh")."""
    return re.sub(r'\s+', '-', territory.strip().lower())


class DistrictAliasResolver:
    """
    Canonicalizes district names for one territory.

    The forward table maps raw district names to canonical region ids. Several
    raw names may share a region id; reverse lookup then returns the first raw
    name in declaration order.
    """

    def __init__(self, mapping: Dict[str, str]):
        self._forward: Dict[str, str] = dict(mapping)
        self._reverse: Dict[str, str] = {}
        for raw_name, canonical in self._forward.items():
            # setdefault keeps the first declared raw name
            self._reverse.setdefault(canonical, raw_name)

    @classmethod
    def for_territory(cls, territory: str) -> "DistrictAliasResolver":
        """Resolver from the built-in alias table; empty for unknown territories."""
        mapping = TERRITORY_DISTRICT_ALIASES.get(territory)
        if mapping is None:
            logger.info(f"No alias table for territory '{territory}', all lookups will miss")
            mapping = {}
        return cls(mapping)

    @classmethod
    def from_config_file(cls, config_path: Union[str, Path]) -> "DistrictAliasResolver":
        """
        Build a resolver from a territory config.json.

        The file's ``districtMapping`` object is the alias table.

        Raises:
            FileNotFoundError: If the config file does not exist
            ValueError: If the file has no districtMapping object
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Territory config not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)

        mapping = config.get('districtMapping') if isinstance(config, dict) else None
        if not isinstance(mapping, dict):
            raise ValueError(f"Config has no districtMapping object: {path}")

        logger.info(f"✓ Loaded {len(mapping)} district aliases from {path}")
        return cls({str(k): str(v) for k, v in mapping.items()})

    @property
    def canonical_names(self) -> List[str]:
        """Closed set of canonical region ids, in first-declared order."""
        return list(self._reverse.keys())

    @property
    def raw_names(self) -> List[str]:
        return list(self._forward.keys())

    def canonicalize(self, raw_name: str) -> Optional[str]:
        """
        Resolve a raw district name to its canonical region id.

        Surrounding whitespace is ignored; comparison is case-sensitive.
        Unknown names return None.
        """
        if not isinstance(raw_name, str):
            return None
        return self._forward.get(raw_name.strip())

    def region_to_district(self, canonical_name: str) -> Optional[str]:
        """Reverse lookup: region id -> first declared raw district name."""
        if not isinstance(canonical_name, str):
            return None
        return self._reverse.get(canonical_name.strip())

    def __contains__(self, raw_name: object) -> bool:
        return isinstance(raw_name, str) and raw_name.strip() in self._forward

    def __len__(self) -> int:
        return len(self._forward)
