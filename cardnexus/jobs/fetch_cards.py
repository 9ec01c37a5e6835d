"""
Fetch Pokemon TCG cards for one regulation mark, in checkpointed chunks.

Pages through the Pokemon TCG API and leaves a merged snapshot at
data/pokemon-cards/regulation-<R>-snapshot.json. With POKEMON_TCG_API_KEY
set, pages are larger and pauses shorter.

Usage:
    python -m cardnexus.jobs.fetch_cards [REGULATION]
"""

import argparse
import asyncio
import logging
import re
import sys
from functools import partial
from pathlib import Path

from cardnexus.config import FetchConfig, settings
from cardnexus.ingest.chunks import CheckpointError, ChunkStore
from cardnexus.ingest.client import PokemonTcgClient
from cardnexus.ingest.normalize import SourceKind, normalize_record
from cardnexus.ingest.pipeline import FetchSummary, fetch_group_chunked

logger = logging.getLogger(__name__)

DEFAULT_REGULATION = "G"

_REGULATION_PATTERN = re.compile(r"^[A-Za-z0-9]{1,4}$")


def validate_regulation(value: str) -> str:
    """Normalize a regulation mark argument ("g" -> "G")."""
    if not _REGULATION_PATTERN.match(value):
        raise ValueError(f"Invalid regulation mark: {value!r}")
    return value.upper()


def group_for(regulation: str) -> str:
    return f"regulation-{regulation}"


async def run_fetch(
    regulation: str,
    config: FetchConfig | None = None,
    data_dir: Path | None = None,
) -> FetchSummary | None:
    """
    Fetch one regulation into chunk files and merge them.

    Returns None when the run failed before producing a summary; the
    partial data is still on disk in that case.

    Raises:
        CheckpointError: If chunk files cannot be written
    """
    config = config or FetchConfig.from_settings()
    store = ChunkStore(data_dir or settings.data_dir)
    group = group_for(regulation)

    logger.info(
        "API key: %s (page size %d, %.1fs between pages)",
        "set" if config.has_api_key else "not set",
        config.page_size,
        config.request_delay,
    )

    try:
        async with PokemonTcgClient(config) as client:
            return await fetch_group_chunked(
                group,
                f"regulationMark:{regulation}",
                client,
                store,
                config,
                partial(normalize_record, SourceKind.POKEMON_TCG_API, group=regulation),
            )
    except CheckpointError:
        raise
    except Exception:
        logger.exception("Fetch of %s failed; partial data kept in %s", group, store.data_dir)
        return None


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Fetch Pokemon TCG cards by regulation mark")
    parser.add_argument(
        "regulation",
        nargs="?",
        default=DEFAULT_REGULATION,
        help=f"Regulation mark to fetch (default: {DEFAULT_REGULATION})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        regulation = validate_regulation(args.regulation)
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)

    try:
        summary = asyncio.run(run_fetch(regulation))
    except CheckpointError as e:
        logger.error("Cannot write checkpoints: %s", e)
        sys.exit(1)

    if summary is not None and summary.snapshot_path is not None:
        logger.info("Snapshot: %s (%d cards)", summary.snapshot_path, summary.cards_saved)


if __name__ == "__main__":
    main()
