"""
Fetch Pokemon TCG cards from the pokemon-tcg-data dump on GitHub.

Bulk alternative to the paged API: each regulation maps to a fixed list of
set files, downloaded whole. Every set file is checkpointed as one chunk,
then the regulation is merged into
data/pokemon-cards/regulation-<R>-github-snapshot.json.

Usage:
    python -m cardnexus.jobs.fetch_github [G|H|I]

Without an argument all three regulations are fetched.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from cardnexus.config import settings
from cardnexus.ingest.chunks import CheckpointError, ChunkStore
from cardnexus.ingest.client import RawFileClient
from cardnexus.ingest.normalize import normalize_page, normalize_pokemon_github
from cardnexus.ingest.retry import (
    PageFetchError,
    RetryPolicy,
    Sleep,
    classify_github_error,
)

logger = logging.getLogger(__name__)

REGULATION_FILES: dict[str, tuple[str, ...]] = {
    # Scarlet & Violet
    "G": (
        "sv1.json",
        "sv2.json",
        "sv3.json",
        "sv3pt5.json",
        "sv4.json",
        "sv4pt5.json",
        "sv5.json",
        "sv6.json",
        "sv6pt5.json",
        "sv7.json",
        "sv8.json",
        "sv8pt5.json",
        "sv9.json",
        "sve.json",
        "svp.json",
    ),
    # Sword & Shield, later sets
    "H": (
        "swsh9.json",
        "swsh9tg.json",
        "swsh10.json",
        "swsh10tg.json",
        "swsh11.json",
        "swsh11tg.json",
        "swsh12.json",
        "swsh12pt5.json",
        "swsh12pt5gg.json",
        "swsh12tg.json",
    ),
    # Sword & Shield, earlier sets
    "I": (
        "swsh1.json",
        "swsh2.json",
        "swsh3.json",
        "swsh35.json",
        "swsh4.json",
        "swsh45.json",
        "swsh45sv.json",
        "swsh5.json",
        "swsh6.json",
        "swsh7.json",
        "swsh8.json",
        "swshp.json",
    ),
}

VALID_REGULATIONS = frozenset(REGULATION_FILES)

# Pause between file downloads
FILE_DELAY_SECONDS = 1.0

GITHUB_RETRY_POLICY = RetryPolicy(max_attempts=3, backoff_step=5.0, rate_limit_cooldown=60.0)


@dataclass
class GithubFetchResult:
    """Outcome of fetching one regulation from GitHub."""

    regulation: str
    files_ok: int = 0
    files_failed: list[str] = field(default_factory=list)
    cards: int = 0
    skipped: int = 0
    snapshot_path: Path | None = None


def group_for(regulation: str) -> str:
    return f"regulation-{regulation}-github"


def cards_url(filename: str, base_url: str | None = None) -> str:
    base = (base_url or settings.pokemon_tcg_github_url).rstrip("/")
    return f"{base}/cards/en/{filename}"


async def fetch_regulation(
    regulation: str,
    client: RawFileClient,
    store: ChunkStore,
    *,
    base_url: str | None = None,
    file_delay: float = FILE_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> GithubFetchResult:
    """
    Download every set file of a regulation and merge them into a snapshot.

    A file that cannot be downloaded is logged and skipped.

    Raises:
        ValueError: If regulation is not one of G, H, I
        CheckpointError: If chunk files cannot be written
    """
    if regulation not in VALID_REGULATIONS:
        raise ValueError(
            f"Invalid regulation: {regulation}. Must be one of {sorted(VALID_REGULATIONS)}"
        )

    files = REGULATION_FILES[regulation]
    group = group_for(regulation)
    result = GithubFetchResult(regulation=regulation)
    chunk_number = store.next_chunk_number(group)

    logger.info("Fetching regulation %s from GitHub: %d files", regulation, len(files))

    for index, filename in enumerate(files):
        if index:
            await sleep(file_delay)

        set_code = filename.removesuffix(".json")
        try:
            raw_cards = await client.fetch_json(cards_url(filename, base_url))
        except PageFetchError as e:
            result.files_failed.append(filename)
            logger.error("Failed to fetch %s: %s", filename, e)
            continue

        if not isinstance(raw_cards, list):
            result.files_failed.append(filename)
            logger.error("%s is not a JSON array; skipping", filename)
            continue

        batch = normalize_page(
            raw_cards,
            lambda raw, code=set_code: normalize_pokemon_github(raw, regulation, code),
        )
        result.skipped += batch.skipped
        result.files_ok += 1
        logger.info("%s: %d cards", filename, len(batch.cards))

        if batch.cards:
            store.write_chunk(group, batch.cards, chunk_number)
            chunk_number += 1
            result.cards += len(batch.cards)

    if store.chunk_numbers(group):
        result.snapshot_path = store.merge_group(group)

    logger.info(
        "Regulation %s: %d/%d files, %d cards, %d skipped",
        regulation,
        result.files_ok,
        len(files),
        result.cards,
        result.skipped,
    )
    return result


async def run_fetch_github(
    regulations: list[str],
    data_dir: Path | None = None,
) -> list[GithubFetchResult]:
    """Fetch each regulation in turn."""
    store = ChunkStore(data_dir or settings.data_dir)
    results = []

    async with RawFileClient(GITHUB_RETRY_POLICY, classify=classify_github_error) as client:
        for regulation in regulations:
            results.append(await fetch_regulation(regulation, client, store))

    return results


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Fetch Pokemon TCG cards from GitHub dumps")
    parser.add_argument(
        "regulation",
        nargs="?",
        help="Regulation to fetch (G, H or I); all when omitted",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.regulation is None:
        regulations = sorted(VALID_REGULATIONS)
    elif args.regulation.upper() in VALID_REGULATIONS:
        regulations = [args.regulation.upper()]
    else:
        logger.error(
            "Invalid regulation %r. Choose one of %s",
            args.regulation,
            ", ".join(sorted(VALID_REGULATIONS)),
        )
        sys.exit(1)

    try:
        results = asyncio.run(run_fetch_github(regulations))
    except CheckpointError as e:
        logger.error("Cannot write checkpoints: %s", e)
        sys.exit(1)

    total = sum(r.cards for r in results)
    logger.info("GitHub fetch complete: %d cards across %d regulations", total, len(results))


if __name__ == "__main__":
    main()
