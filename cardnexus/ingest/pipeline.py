"""
Chunked fetch orchestration.

Pages are pulled one at a time, normalized, and checkpointed every
save_interval pages. At most one interval of fetched data is lost if the
process dies; on an exception that reaches this module whatever has been
fetched since the last checkpoint is saved before it propagates.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cardnexus.config import FetchConfig
from cardnexus.ingest.chunks import ChunkStore
from cardnexus.ingest.client import PokemonTcgClient, is_last_page
from cardnexus.ingest.normalize import normalize_page
from cardnexus.ingest.retry import PageFetchError, Sleep
from cardnexus.models.card import NormalizedCard

logger = logging.getLogger(__name__)


@dataclass
class FetchSummary:
    """What a chunked fetch run produced."""

    group: str
    pages_fetched: int = 0
    records_fetched: int = 0
    cards_saved: int = 0
    records_skipped: int = 0
    chunk_paths: list[Path] = field(default_factory=list)
    snapshot_path: Path | None = None
    failed_pages: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_pages and self.snapshot_path is not None


class _Checkpointer:
    """Buffers normalized cards and flushes them as numbered chunks."""

    def __init__(self, store: ChunkStore, group: str, summary: FetchSummary) -> None:
        self.store = store
        self.group = group
        self.summary = summary
        self.pending: list[NormalizedCard] = []
        self.next_number = store.next_chunk_number(group)

        if self.next_number > 1:
            logger.info(
                "Found %d chunk(s) from an earlier run of %s; they will be merged too",
                self.next_number - 1,
                group,
            )

    def add(self, cards: list[NormalizedCard]) -> None:
        self.pending.extend(cards)

    def flush(self) -> None:
        if not self.pending:
            return
        path = self.store.write_chunk(self.group, self.pending, self.next_number)
        self.summary.chunk_paths.append(path)
        self.summary.cards_saved += len(self.pending)
        self.next_number += 1
        self.pending = []


async def fetch_group_chunked(
    group: str,
    query: str,
    client: PokemonTcgClient,
    store: ChunkStore,
    config: FetchConfig,
    normalize: Callable[[dict[str, Any]], NormalizedCard],
    *,
    sleep: Sleep = asyncio.sleep,
) -> FetchSummary:
    """
    Fetch every page for query, checkpointing into chunks of group.

    A page that fails within the retry policy ends the run, unless
    config.skip_failed_pages is set and the reported total says more pages
    follow. Either way the data fetched so far is checkpointed and merged.

    Args:
        group: Logical group the chunks and snapshot are named after
        query: API search filter
        client: Page client
        store: Chunk storage
        config: Page size, delays and save interval
        normalize: Maps one raw record to a NormalizedCard
        sleep: Awaitable used for the inter-page delay

    Returns:
        FetchSummary; snapshot_path is set once chunks were merged

    Raises:
        CheckpointError: If chunk files cannot be written
    """
    summary = FetchSummary(group=group)
    checkpoints = _Checkpointer(store, group, summary)

    page_number = 1
    fetched = 0
    total_count: int | None = None

    logger.info(
        "Fetching %s (%s): page size %d, %.1fs between pages, checkpoint every %d pages",
        group,
        query,
        config.page_size,
        config.request_delay,
        config.save_interval,
    )

    try:
        while True:
            try:
                page = await client.fetch_page(query, page_number, config.page_size)
            except PageFetchError as e:
                summary.failed_pages.append(page_number)
                logger.error("Page %d failed: %s", page_number, e)

                more_pages = (
                    total_count is not None and page_number * config.page_size < total_count
                )
                if config.skip_failed_pages and more_pages:
                    page_number += 1
                    await sleep(config.request_delay)
                    continue
                logger.warning("Stopping at page %d; keeping what was fetched", page_number)
                break

            total_count = page.total_count
            fetched += len(page.records)
            summary.pages_fetched += 1
            summary.records_fetched += len(page.records)

            batch = normalize_page(page.records, normalize)
            summary.records_skipped += batch.skipped
            checkpoints.add(batch.cards)

            logger.info(
                "Page %d: %d cards (%d/%s)",
                page_number,
                len(page.records),
                fetched,
                total_count,
            )

            if summary.pages_fetched % config.save_interval == 0:
                checkpoints.flush()

            if is_last_page(page, fetched):
                break

            page_number += 1
            await sleep(config.request_delay)

        checkpoints.flush()
    except BaseException:
        if checkpoints.pending:
            logger.warning(
                "Fetch of %s aborted; saving %d unsaved cards", group, len(checkpoints.pending)
            )
            checkpoints.flush()
        raise

    if store.chunk_numbers(group):
        summary.snapshot_path = store.merge_group(group)
    else:
        logger.warning("No cards fetched for %s; nothing to merge", group)

    logger.info(
        "Fetch of %s done: %d pages, %d records, %d saved, %d skipped, %d failed pages",
        group,
        summary.pages_fetched,
        summary.records_fetched,
        summary.cards_saved,
        summary.records_skipped,
        len(summary.failed_pages),
    )
    return summary
