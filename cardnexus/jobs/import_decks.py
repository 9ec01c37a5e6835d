"""
Import decks from the pokemon-tcg-data deck dumps.

Lists decks/en on GitHub, downloads each set's deck file and imports the
decks with their card lists. Cards that have not been imported yet are
linked to unregistered-card placeholders.

Usage:
    python -m cardnexus.jobs.import_decks [FILE ...]

Without arguments every deck file in the directory is imported.
"""

import argparse
import asyncio
import logging
from typing import Any

from cardnexus.config import settings
from cardnexus.db.database import async_session_factory, close_db, init_db
from cardnexus.ingest.client import RawFileClient
from cardnexus.ingest.retry import PageFetchError, RetryPolicy, classify_github_error
from cardnexus.services.deck_importer import DeckImportReport, import_decks

logger = logging.getLogger(__name__)

DECKS_PATH = "decks/en"

GITHUB_RETRY_POLICY = RetryPolicy(max_attempts=3, backoff_step=5.0, rate_limit_cooldown=60.0)


async def list_deck_files(client: RawFileClient) -> list[str]:
    """Names of the JSON deck files in the upstream directory, sorted."""
    listing = await client.fetch_json(f"{settings.github_contents_api_url}/{DECKS_PATH}")
    if not isinstance(listing, list):
        logger.error("Unexpected directory listing for %s", DECKS_PATH)
        return []

    return sorted(
        entry["name"]
        for entry in listing
        if isinstance(entry, dict) and str(entry.get("name", "")).endswith(".json")
    )


async def fetch_deck_file(client: RawFileClient, filename: str) -> list[Any]:
    """Decks in one file; a single deck object is returned as a one-item list."""
    url = f"{settings.pokemon_tcg_github_url.rstrip('/')}/{DECKS_PATH}/{filename}"
    payload = await client.fetch_json(url)
    return payload if isinstance(payload, list) else [payload]


async def run_deck_import(filenames: list[str] | None = None) -> DeckImportReport:
    """
    Import every listed deck file, or all of them when none are given.

    A file that cannot be downloaded is logged and skipped.
    """
    await init_db()
    report = DeckImportReport()

    try:
        async with RawFileClient(GITHUB_RETRY_POLICY, classify=classify_github_error) as client:
            if not filenames:
                try:
                    filenames = await list_deck_files(client)
                except PageFetchError as e:
                    logger.error("Failed to list deck files: %s", e)
                    return report

            logger.info("Importing decks from %d files", len(filenames))

            for filename in filenames:
                try:
                    decks = await fetch_deck_file(client, filename)
                except PageFetchError as e:
                    logger.error("Failed to fetch %s: %s", filename, e)
                    continue

                logger.info("%s: %d decks", filename, len(decks))
                report.merge(await import_decks(async_session_factory, decks))
    finally:
        await close_db()

    logger.info(
        "All deck files done: %d created, %d updated, %d failed",
        report.decks_created,
        report.decks_updated,
        report.decks_failed,
    )
    return report


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Import decks from pokemon-tcg-data")
    parser.add_argument(
        "files",
        nargs="*",
        help="Deck files under decks/en to import (default: all)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    files = [f if f.endswith(".json") else f"{f}.json" for f in args.files]
    asyncio.run(run_deck_import(files or None))


if __name__ == "__main__":
    main()
