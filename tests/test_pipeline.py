"""Tests for chunked fetch orchestration."""

import json
from pathlib import Path

import pytest

from cardnexus.config import FetchConfig
from cardnexus.ingest.chunks import ChunkStore
from cardnexus.ingest.client import CardPage
from cardnexus.ingest.normalize import SourceKind, normalize_record
from cardnexus.ingest.pipeline import fetch_group_chunked
from cardnexus.ingest.retry import FetchErrorKind, PageFetchError

GROUP = "regulation-G"


def _normalize(raw):
    return normalize_record(SourceKind.POKEMON_TCG_API, raw, "G")


async def _no_sleep(seconds: float) -> None:
    return None


class FakeClient:
    """Serves `total` cards page by page; pages in `failures` raise."""

    def __init__(
        self,
        make_card,
        total: int,
        failures: dict[int, Exception] | None = None,
        report_total: bool = True,
    ):
        self.make_card = make_card
        self.total = total
        self.report_total = report_total
        self.failures = failures or {}
        self.requested: list[int] = []
        self.on_fetch = None

    async def fetch_page(self, query: str, page: int, page_size: int) -> CardPage:
        self.requested.append(page)
        if self.on_fetch is not None:
            self.on_fetch(page)
        if page in self.failures:
            raise self.failures[page]

        start = (page - 1) * page_size
        ids = range(start + 1, min(start + page_size, self.total) + 1)
        return CardPage(
            records=[self.make_card(i) for i in ids],
            total_count=self.total if self.report_total else None,
            page=page,
            page_size=page_size,
        )


def _page_error(page: int) -> PageFetchError:
    return PageFetchError(FetchErrorKind.RATE_LIMITED, 3, f"page {page}: gave up")


class TestCheckpointing:
    async def test_checkpoints_every_save_interval(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """With save_interval 2, chunk-1 exists before page 3 is requested."""
        store = ChunkStore(data_dir)
        client = FakeClient(raw_card_factory, total=50)
        chunks_seen: dict[int, list[int]] = {}
        client.on_fetch = lambda page: chunks_seen.setdefault(page, store.chunk_numbers(GROUP))

        summary = await fetch_group_chunked(
            GROUP, "regulationMark:G", client, store, fetch_config, _normalize, sleep=_no_sleep
        )

        assert client.requested == [1, 2, 3, 4, 5]
        assert chunks_seen[2] == []
        assert chunks_seen[3] == [1]
        assert chunks_seen[5] == [1, 2]
        assert len(summary.chunk_paths) == 3
        assert summary.cards_saved == 50
        assert summary.complete is True

    async def test_merges_and_removes_chunks(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """A finished run leaves only the snapshot."""
        store = ChunkStore(data_dir)

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            FakeClient(raw_card_factory, total=47),
            store,
            fetch_config,
            _normalize,
            sleep=_no_sleep,
        )

        assert summary.snapshot_path == data_dir / "regulation-G-snapshot.json"
        assert store.chunk_numbers(GROUP) == []
        assert summary.records_fetched == 47

    async def test_skips_malformed_records(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """Records without a name are counted as skipped."""

        def make_card(i: int) -> dict:
            return raw_card_factory(i, name="" if i == 3 else f"Card {i}")

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            FakeClient(make_card, total=5),
            ChunkStore(data_dir),
            fetch_config,
            _normalize,
            sleep=_no_sleep,
        )

        assert summary.records_skipped == 1
        assert summary.cards_saved == 4

    async def test_badly_nested_record_is_skipped(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """A record whose images field is a string does not end the run."""

        def make_card(i: int) -> dict:
            return raw_card_factory(i, images="n/a") if i == 12 else raw_card_factory(i)

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            FakeClient(make_card, total=30),
            ChunkStore(data_dir),
            fetch_config,
            _normalize,
            sleep=_no_sleep,
        )

        assert summary.records_skipped == 1
        assert summary.cards_saved == 29
        assert summary.snapshot_path is not None

    async def test_pages_until_short_page_without_total(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        client = FakeClient(raw_card_factory, total=25, report_total=False)

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            client,
            ChunkStore(data_dir),
            fetch_config,
            _normalize,
            sleep=_no_sleep,
        )

        assert client.requested == [1, 2, 3]
        assert summary.cards_saved == 25

    async def test_leftover_chunks_are_merged(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """Chunks from an interrupted run are numbered around and merged."""
        store = ChunkStore(data_dir)
        previous = [_normalize(raw_card_factory(100))]
        store.write_chunk(GROUP, previous, 1)

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            FakeClient(raw_card_factory, total=5),
            store,
            fetch_config,
            _normalize,
            sleep=_no_sleep,
        )

        assert summary.chunk_paths == [data_dir / "regulation-G-chunk-2.json"]
        assert summary.snapshot_path is not None
        assert store.chunk_numbers(GROUP) == []

    async def test_empty_result_writes_nothing(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            FakeClient(raw_card_factory, total=0),
            ChunkStore(data_dir),
            fetch_config,
            _normalize,
            sleep=_no_sleep,
        )

        assert summary.snapshot_path is None
        assert list(data_dir.iterdir()) == []


class TestFailures:
    async def test_salvages_unsaved_cards_on_crash(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """23 fetched cards survive a crash before the first checkpoint."""
        store = ChunkStore(data_dir)
        config = fetch_config.with_overrides(page_size=23, save_interval=50)
        client = FakeClient(raw_card_factory, total=100, failures={2: RuntimeError("boom")})

        with pytest.raises(RuntimeError, match="boom"):
            await fetch_group_chunked(
                GROUP, "regulationMark:G", client, store, config, _normalize, sleep=_no_sleep
            )

        assert store.chunk_numbers(GROUP) == [1]
        assert not store.snapshot_path(GROUP).exists()
        saved = json.loads(store.chunk_path(GROUP, 1).read_text(encoding="utf-8"))
        assert len(saved) == 23

    async def test_failed_page_stops_run_and_keeps_data(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """A page that exhausts its retries ends the run; earlier pages are merged."""
        store = ChunkStore(data_dir)
        client = FakeClient(raw_card_factory, total=40, failures={2: _page_error(2)})

        summary = await fetch_group_chunked(
            GROUP, "regulationMark:G", client, store, fetch_config, _normalize, sleep=_no_sleep
        )

        assert client.requested == [1, 2]
        assert summary.failed_pages == [2]
        assert summary.cards_saved == 10
        assert summary.snapshot_path is not None
        assert summary.complete is False

    async def test_skip_failed_pages_continues(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """A skipped page is passed over and the run ends at the reported total."""
        config = fetch_config.with_overrides(skip_failed_pages=True)
        client = FakeClient(raw_card_factory, total=30, failures={2: _page_error(2)})

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            client,
            ChunkStore(data_dir),
            config,
            _normalize,
            sleep=_no_sleep,
        )

        assert client.requested == [1, 2, 3]
        assert summary.failed_pages == [2]
        assert summary.cards_saved == 20

    async def test_first_page_failure_cannot_be_skipped(
        self, fetch_config: FetchConfig, data_dir: Path, raw_card_factory
    ) -> None:
        """Without a known total there is nothing to skip to."""
        config = fetch_config.with_overrides(skip_failed_pages=True)
        client = FakeClient(raw_card_factory, total=30, failures={1: _page_error(1)})

        summary = await fetch_group_chunked(
            GROUP,
            "regulationMark:G",
            client,
            ChunkStore(data_dir),
            config,
            _normalize,
            sleep=_no_sleep,
        )

        assert client.requested == [1]
        assert summary.snapshot_path is None
