"""
Import cards into the database.

Reads a snapshot produced by one of the fetch jobs (by default
data/pokemon-cards/regulation-G-snapshot.json) and upserts every card.
With --live REGULATION the cards are pulled from the Pokemon TCG API
instead and imported without touching the disk.

Usage:
    python -m cardnexus.jobs.import_cards [SNAPSHOT]
    python -m cardnexus.jobs.import_cards --live G
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cardnexus.config import FetchConfig, settings
from cardnexus.db.database import async_session_factory, close_db, init_db
from cardnexus.ingest.client import PokemonTcgClient, iter_pages
from cardnexus.ingest.normalize import SourceKind, normalize_page, normalize_record
from cardnexus.ingest.retry import PageFetchError
from cardnexus.models.card import NormalizedCard
from cardnexus.services.importer import (
    ImportReport,
    SnapshotFormatError,
    import_cards,
    import_snapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT = "regulation-G-snapshot.json"


def default_snapshot_path() -> Path:
    return settings.data_dir / DEFAULT_SNAPSHOT


async def fetch_live(regulation: str, config: FetchConfig | None = None) -> list[NormalizedCard]:
    """
    Pull every card of a regulation from the API into memory.

    Raises:
        PageFetchError: If a page failed within the retry policy
    """
    config = config or FetchConfig.from_settings()
    cards: list[NormalizedCard] = []

    async with PokemonTcgClient(config) as client:
        async for page in iter_pages(
            client,
            f"regulationMark:{regulation}",
            config.page_size,
            request_delay=config.request_delay,
        ):
            batch = normalize_page(
                page.records,
                lambda raw: normalize_record(SourceKind.POKEMON_TCG_API, raw, regulation),
            )
            cards.extend(batch.cards)

    logger.info("Fetched %d cards for regulation %s", len(cards), regulation)
    return cards


async def run_import(
    snapshot: Path | None = None,
    live_regulation: str | None = None,
    batch_size: int | None = None,
) -> ImportReport:
    """
    Create tables if needed and import from a snapshot or the live API.

    Raises:
        FileNotFoundError: If the snapshot doesn't exist
        SnapshotFormatError: If the snapshot has an unexpected shape
        PageFetchError: If a live fetch failed
    """
    batch_size = batch_size or settings.import_batch_size
    await init_db()

    try:
        if live_regulation is not None:
            cards = await fetch_live(live_regulation)
            return await import_cards(async_session_factory, cards, batch_size)

        path = snapshot or default_snapshot_path()
        logger.info("Importing from %s", path)
        return await import_snapshot(async_session_factory, path, batch_size)
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Import cards into the database")
    parser.add_argument(
        "snapshot",
        nargs="?",
        type=Path,
        help=f"Snapshot file to import (default: {DEFAULT_SNAPSHOT} in the data directory)",
    )
    parser.add_argument(
        "--live",
        metavar="REGULATION",
        help="Fetch this regulation from the API instead of reading a snapshot",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Cards per commit (default: {settings.import_batch_size})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.snapshot is not None and args.live is not None:
        logger.error("Give either a snapshot file or --live, not both")
        sys.exit(1)
    if args.batch_size is not None and args.batch_size < 1:
        logger.error("--batch-size must be at least 1")
        sys.exit(1)

    live = args.live.upper() if args.live else None

    try:
        report = asyncio.run(run_import(args.snapshot, live, args.batch_size))
    except FileNotFoundError as e:
        logger.error("Snapshot not found: %s", e.filename or e)
        sys.exit(1)
    except (SnapshotFormatError, PageFetchError) as e:
        logger.error("%s", e)
        sys.exit(1)

    if report.failed:
        logger.warning("%d cards failed to import", report.failed)


if __name__ == "__main__":
    main()
