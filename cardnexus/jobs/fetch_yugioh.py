"""
Fetch all Yu-Gi-Oh! cards from YGOPRODeck.

The cardinfo endpoint returns the full card list in one response, so there
is no paging or chunking; the normalized result is written straight to
data/pokemon-cards/yugioh-all-snapshot.json.

Usage:
    python -m cardnexus.jobs.fetch_yugioh [--language ja]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cardnexus.config import settings
from cardnexus.ingest.chunks import CheckpointError, ChunkStore
from cardnexus.ingest.client import RawFileClient
from cardnexus.ingest.normalize import NormalizedBatch, normalize_page, normalize_ygoprodeck
from cardnexus.ingest.retry import PageFetchError, RetryPolicy

logger = logging.getLogger(__name__)

SNAPSHOT_GROUP = "yugioh-all"
DEFAULT_LANGUAGE = "ja"

# The full list is large and slow to render upstream
REQUEST_TIMEOUT_SECONDS = 120.0

YGOPRODECK_RETRY_POLICY = RetryPolicy(max_attempts=5, backoff_step=5.0, rate_limit_cooldown=30.0)


def cardinfo_url(base_url: str | None = None) -> str:
    return f"{(base_url or settings.ygoprodeck_api_url).rstrip('/')}/cardinfo.php"


async def fetch_yugioh_cards(
    client: RawFileClient,
    language: str = DEFAULT_LANGUAGE,
    base_url: str | None = None,
) -> NormalizedBatch:
    """
    Download and normalize the full card list.

    Raises:
        PageFetchError: If the request failed within the retry policy
        ValueError: If the response has no "data" array
    """
    params = {"language": language} if language else None
    payload = await client.fetch_json(cardinfo_url(base_url), params=params)

    records = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(records, list):
        raise ValueError("YGOPRODeck response has no data array")

    logger.info("Received %d cards", len(records))
    return normalize_page(records, lambda raw: normalize_ygoprodeck(raw, SNAPSHOT_GROUP))


async def run_fetch_yugioh(
    language: str = DEFAULT_LANGUAGE,
    data_dir: Path | None = None,
) -> Path | None:
    """
    Fetch, normalize and write the snapshot.

    Returns the snapshot path, or None when nothing could be fetched.

    Raises:
        CheckpointError: If the snapshot cannot be written
    """
    store = ChunkStore(data_dir or settings.data_dir)

    async with RawFileClient(
        YGOPRODECK_RETRY_POLICY, timeout=REQUEST_TIMEOUT_SECONDS
    ) as client:
        try:
            batch = await fetch_yugioh_cards(client, language)
        except (PageFetchError, ValueError) as e:
            logger.error("Failed to fetch Yu-Gi-Oh! cards: %s", e)
            return None

    if not batch.cards:
        logger.warning("No cards normalized; snapshot not written")
        return None

    path = store.write_snapshot(SNAPSHOT_GROUP, batch.cards)
    logger.info("Saved %d cards (%d skipped) to %s", len(batch.cards), batch.skipped, path)
    return path


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Fetch all Yu-Gi-Oh! cards from YGOPRODeck")
    parser.add_argument(
        "--language",
        default=DEFAULT_LANGUAGE,
        help=f"Card text language (default: {DEFAULT_LANGUAGE}); empty for English",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(run_fetch_yugioh(args.language))
    except CheckpointError as e:
        logger.error("Cannot write snapshot: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
