"""
Run the catalog crawler from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict

from app.services.catalog_crawler import CatalogCrawler


def main() -> int:
    parser = argparse.ArgumentParser(description="Sweep the reference catalog from the persisted cursor.")
    parser.add_argument(
        "--batches",
        type=int,
        default=None,
        help="Number of id batches to process (default: CRAWLER_BATCHES_PER_RUN).",
    )
    parser.add_argument(
        "--fetch-ids",
        dest="fetch_ids",
        type=int,
        nargs="+",
        default=None,
        help="Backfill these ids instead of sweeping; the cursor is not moved.",
    )
    parser.add_argument(
        "--enable",
        action="store_true",
        help="Enable the crawler before running.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    crawler = CatalogCrawler()
    if args.enable:
        crawler.set_enabled(True)

    if args.fetch_ids:
        payload = crawler.fetch_ids(args.fetch_ids)
    else:
        payload = asdict(crawler.run(batches=args.batches))

    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
