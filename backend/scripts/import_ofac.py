"""
Import Venezuela-related OFAC designations into the Tier-1 watchlist.

By default downloads the Treasury SDN CSV files (sdn.csv + alt.csv) and
keeps entries under VENEZUELA* programs. With --seed, imports the bundled
list of known officials instead (no network).

Pending review items are rematched against the new watchlist version.

Usage:
    python -m scripts.import_ofac [--seed] [--url URL] [--alt-url URL] [--dry-run] [--db PATH]
"""
import argparse
import logging
import sys
from pathlib import Path

import httpx

from curation.config import CurationSettings
from curation.db import Database
from curation.migrations import apply_migrations
from curation.ofac import OFAC_ALT_CSV_URL, OFAC_SDN_CSV_URL, fetch_sdn_records
from curation.pipeline import CurationPipeline
from curation.seed_data import seed_records

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

DB_PATH = Path(__file__).parent.parent / "memoria.db"


def load_records(args: argparse.Namespace) -> list[dict]:
    if args.seed:
        records = seed_records()
        logger.info(f"Using bundled seed list ({len(records)} records)")
        return records

    try:
        records = fetch_sdn_records(args.url, args.alt_url or None)
    except httpx.HTTPError as e:
        logger.error(f"Failed to download OFAC SDN data: {e}")
        logger.error("Re-run with --url, or with --seed for the bundled list")
        return []
    logger.info(f"Parsed {len(records)} Venezuela-related SDN records")
    return records


def import_records(records: list[dict], db_path: Path) -> int:
    db = Database(db_path)
    applied = apply_migrations(db)
    if applied:
        logger.info(f"Applied migrations: {applied}")

    # Importing never calls the curator
    settings = CurationSettings.from_env({"MEMORIA_CURATOR": "off"})
    pipeline = CurationPipeline(db, settings, background=False)
    try:
        report = pipeline.import_watchlist(records)
    finally:
        pipeline.shutdown()

    logger.info(
        f"Imported {report.imported}, updated {report.updated}, skipped {report.skipped} "
        f"(watchlist version {pipeline.watchlist.version})"
    )
    for error in report.errors[:20]:
        logger.warning(f"  record {error['index']} ({error['external_id']}): {error['reason']}")
    if len(report.errors) > 20:
        logger.warning(f"  ... and {len(report.errors) - 20} more errors")
    return report.imported + report.updated


def main():
    parser = argparse.ArgumentParser(description="Import OFAC Venezuela designations into the Tier-1 watchlist")
    parser.add_argument("--seed", action="store_true", help="Import the bundled seed list instead of downloading")
    parser.add_argument("--url", default=OFAC_SDN_CSV_URL, help="sdn.csv download URL")
    parser.add_argument("--alt-url", default=OFAC_ALT_CSV_URL, help="alt.csv download URL (empty to skip aliases)")
    parser.add_argument("--db", type=Path, default=DB_PATH, help="SQLite database path")
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    records = load_records(args)
    if not records:
        logger.warning("No records to import")
        sys.exit(1)

    if args.dry_run:
        logger.info(f"Dry run: {len(records)} records would be imported")
        for r in records[:3]:
            logger.info(f"  {r['externalId']}: {r['fullName']} {r['sanctionsPrograms']}")
        return

    import_records(records, args.db)


if __name__ == "__main__":
    main()
