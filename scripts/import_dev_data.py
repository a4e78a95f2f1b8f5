#!/usr/bin/env python3
"""Load or delete development tour data."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tours_api.core.database import close_db, get_database, init_db
from tours_api.core.exceptions import AppError
from tours_api.services.tour_service import TourService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "data" / "tours-simple.json"


async def import_data(path: Path) -> int:
    """Create every tour in ``path`` through the validating service; return failures."""
    tours = json.loads(path.read_text(encoding="utf-8"))
    service = TourService(get_database())

    failures = 0
    for payload in tours:
        try:
            await service.create_tour(payload)
        except AppError as e:
            failures += 1
            logger.error(f"Skipping tour {payload.get('name')!r}: {e.message}")

    logger.info(f"Data successfully loaded: {len(tours) - failures} of {len(tours)} tours")
    return failures


async def delete_data() -> None:
    """Remove every tour from the collection."""
    deleted = await TourService(get_database()).delete_all()
    logger.info(f"Data successfully deleted: {deleted} tours")


async def main(args: argparse.Namespace) -> int:
    await init_db()
    try:
        if args.delete:
            await delete_data()
            return 0
        failures = await import_data(args.file)
        return 1 if failures else 0
    finally:
        await close_db()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--import", dest="do_import", action="store_true", help="load tours from the data file")
    action.add_argument("--delete", action="store_true", help="delete all tours")
    parser.add_argument("--file", type=Path, default=DEFAULT_DATA_FILE, help="JSON file with a list of tours")
    return parser.parse_args(argv)


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
