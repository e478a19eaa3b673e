#!/usr/bin/env python3
"""
Build the SQLite emission-factor catalog from a JSONL export.

Each input line is one record with id, title, sector, subsector, unit, factor,
source and description (older exports using name/activity/emission_factor are
accepted too).

Usage:
    python scripts/build_catalog.py [--data PATH] [--output PATH]

The server builds the catalog on startup if it is missing; run this after
updating the export to rebuild ahead of deploy.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports when running as script
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from carbonmatch_mcp.db import CatalogError, build_catalog


def main():
    parser = argparse.ArgumentParser(description="Build emission-factor catalog")
    parser.add_argument(
        "--data", "-d",
        type=Path,
        default=Path("data/emission_factors.jsonl"),
        help="JSONL export, optionally gzipped (default: data/emission_factors.jsonl)",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("data/catalog.db"),
        help="Output database path (default: data/catalog.db)",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress output",
    )
    args = parser.parse_args()

    if not args.data.exists():
        print(f"Error: Data file not found: {args.data}")
        return 1

    try:
        build_catalog(args.data, args.output, verbose=not args.quiet)
    except CatalogError as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
