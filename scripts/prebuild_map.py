#!/usr/bin/env python3
"""
Pre-build a territory district map and save the plotly figure to disk.
Run this after generating the territory's boundaries.json.

Usage:
    python scripts/prebuild_map.py --state Karnataka
    python scripts/prebuild_map.py --state Goa --theme dark --output goa.json
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from rto_map.boundary_sources import StaticBoundarySource
from rto_map.config import CACHE_DIR, DATA_DIR
from rto_map.geo_utils import territory_folder
from rto_map.map_view import THEMES, PlotlyMapRenderer, get_theme

logger = logging.getLogger(__name__)


def build_territory_map(territory: str, features: dict, theme: str = 'light',
                        current_district: Optional[str] = None) -> PlotlyMapRenderer:
    """Draw every district of a territory; the current district is emphasised."""
    renderer = PlotlyMapRenderer(territory, theme=theme)
    palette = get_theme(theme)
    for district, feature in sorted(features.items()):
        is_current = current_district is not None and district.lower() == current_district.lower()
        renderer.draw_boundary(district, feature, palette.style('current' if is_current else 'default'))
    return renderer


def main(argv: Optional[list] = None) -> bool:
    parser = argparse.ArgumentParser(description="Pre-build a territory district map")
    parser.add_argument('--state', required=True, help="Territory name")
    parser.add_argument('--data-dir', type=Path, default=DATA_DIR, help="Dataset root directory")
    parser.add_argument('--theme', default='light', choices=sorted(THEMES))
    parser.add_argument('--current', default=None, help="District to highlight")
    parser.add_argument('--output', type=Path, default=None, help="Figure JSON path")
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info(f"PRE-BUILDING DISTRICT MAP: {args.state}")
    logger.info("=" * 60)

    source = StaticBoundarySource(data_dir=args.data_dir)
    features = asyncio.run(source.load_all(args.state))
    if not features:
        logger.error(f"❌ No boundaries for {args.state} at {source.location(args.state)}")
        logger.error("Run first: python scripts/generate_boundaries.py --state <name>")
        return False
    logger.info(f"✅ Loaded {len(features)} district boundaries")

    renderer = build_territory_map(args.state, features, args.theme, args.current)

    output = args.output or CACHE_DIR / f"{territory_folder(args.state)}_map_{args.theme}.json"
    output.parent.mkdir(parents=True, exist_ok=True)
    renderer.write_json(output)
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    success = main()
    exit(0 if success else 1)
