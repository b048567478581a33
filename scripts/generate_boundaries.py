#!/usr/bin/env python3
"""
Generate a territory's district boundary dataset from OpenStreetMap.

Looks up every canonical district of the territory alias table through
Nominatim (sequential, rate limited) and writes
data/<territory-folder>/boundaries.json as a GeoJSON FeatureCollection.

Usage:
    python scripts/generate_boundaries.py --state Karnataka
    python scripts/generate_boundaries.py --state Goa --force
"""

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rto_map.boundary_sources import NominatimClient
from rto_map.config import BOUNDARIES_FILE, DATA_DIR
from rto_map.geo_utils import TERRITORY_DISTRICT_ALIASES, DistrictAliasResolver, territory_folder

logger = logging.getLogger(__name__)


async def generate_boundaries(territory: str, client: NominatimClient) -> dict:
    """Fetch every canonical district of a territory and build the collection."""
    resolver = DistrictAliasResolver.for_territory(territory)
    districts = resolver.canonical_names
    if not districts:
        raise ValueError(f"No district alias table for territory '{territory}'")

    features = []
    failed = []
    for i, district in enumerate(districts, start=1):
        logger.info(f"[{i}/{len(districts)}] {district}")
        feature = await client.search_boundary(territory, district)
        if feature is None:
            failed.append(district)
            continue
        features.append(feature.to_geojson())

    return {
        'type': 'FeatureCollection',
        'generatedAt': datetime.now(timezone.utc).isoformat(),
        'state': territory,
        'districtCount': len(districts),
        'successCount': len(features),
        'failedDistricts': failed,
        'features': features,
    }


def write_collection(collection: dict, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(collection, f, ensure_ascii=False)

    file_size_kb = output_path.stat().st_size / 1024
    logger.info(f"✓ Saved {collection['successCount']}/{collection['districtCount']} boundaries to {output_path} ({file_size_kb:.0f} KB)")


def main(argv: Optional[list] = None) -> bool:
    parser = argparse.ArgumentParser(description="Generate district boundaries for a territory")
    parser.add_argument('--state', required=True, choices=sorted(TERRITORY_DISTRICT_ALIASES), help="Territory name")
    parser.add_argument('--data-dir', type=Path, default=DATA_DIR, help="Dataset root directory")
    parser.add_argument('--force', action='store_true', help="Overwrite an existing dataset")
    args = parser.parse_args(argv)

    output_path = args.data_dir / territory_folder(args.state) / BOUNDARIES_FILE
    if output_path.exists() and not args.force:
        logger.info(f"Dataset already exists: {output_path} (use --force to regenerate)")
        return True

    logger.info("=" * 60)
    logger.info(f"GENERATING DISTRICT BOUNDARIES: {args.state}")
    logger.info("=" * 60)

    collection = asyncio.run(generate_boundaries(args.state, NominatimClient()))
    if not collection['features']:
        logger.error(f"❌ No boundaries found for {args.state}")
        return False

    if collection['failedDistricts']:
        logger.warning(f"⚠️ Missing boundaries: {', '.join(collection['failedDistricts'])}")

    write_collection(collection, output_path)
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    success = main()
    exit(0 if success else 1)
