"""Tests for chunk checkpoints and merging."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from cardnexus.ingest.chunks import CheckpointError, ChunkMergeError, ChunkStore
from cardnexus.models.card import NormalizedCard


def _cards(*ids: str, name: str = "Card") -> list[NormalizedCard]:
    return [NormalizedCard(api_id=card_id, name=name) for card_id in ids]


def _read(path: Path) -> list[dict]:
    return json.loads(path.read_text(encoding="utf-8"))


class TestChunkFiles:
    def test_chunk_naming(self, data_dir: Path) -> None:
        """Chunks are named <group>-chunk-<n>.json."""
        store = ChunkStore(data_dir)
        path = store.write_chunk("regulation-G", _cards("sv1-1"), 1)

        assert path == data_dir / "regulation-G-chunk-1.json"
        assert _read(path)[0]["api_id"] == "sv1-1"

    def test_numeric_order(self, data_dir: Path) -> None:
        """chunk-10 sorts after chunk-2."""
        store = ChunkStore(data_dir)
        for n in (10, 2, 1):
            store.write_chunk("regulation-G", _cards(f"sv1-{n}"), n)

        assert store.chunk_numbers("regulation-G") == [1, 2, 10]
        assert store.next_chunk_number("regulation-G") == 11

    def test_groups_are_separate(self, data_dir: Path) -> None:
        """A group's chunks are not confused with another group sharing its prefix."""
        store = ChunkStore(data_dir)
        store.write_chunk("regulation-G", _cards("sv1-1"), 1)
        store.write_chunk("regulation-G-github", _cards("sv1-2"), 1)

        assert store.chunk_numbers("regulation-G") == [1]
        assert store.chunk_numbers("regulation-G-github") == [1]

    def test_empty_chunk_rejected(self, data_dir: Path) -> None:
        """Writing zero records is refused."""
        with pytest.raises(ValueError, match="empty"):
            ChunkStore(data_dir).write_chunk("regulation-G", [], 1)

    def test_chunk_number_starts_at_one(self, data_dir: Path) -> None:
        with pytest.raises(ValueError):
            ChunkStore(data_dir).write_chunk("regulation-G", _cards("sv1-1"), 0)

    def test_rewrite_replaces_whole_file(self, data_dir: Path) -> None:
        """Re-writing a chunk leaves only the new content and no temp files."""
        store = ChunkStore(data_dir)
        store.write_chunk("regulation-G", _cards("sv1-1", "sv1-2", "sv1-3"), 1)
        path = store.write_chunk("regulation-G", _cards("sv1-9"), 1)

        assert [r["api_id"] for r in _read(path)] == ["sv1-9"]
        assert sorted(p.name for p in data_dir.iterdir()) == ["regulation-G-chunk-1.json"]

    def test_creates_missing_directory(self, tmp_path: Path) -> None:
        """The data directory is created on first write."""
        store = ChunkStore(tmp_path / "nested" / "dir")
        store.write_chunk("regulation-G", _cards("sv1-1"), 1)

        assert store.chunk_numbers("regulation-G") == [1]

    def test_no_chunks_when_directory_missing(self, tmp_path: Path) -> None:
        assert ChunkStore(tmp_path / "absent").chunk_numbers("regulation-G") == []


class TestMergeGroup:
    def test_merges_in_numeric_order_and_deletes_chunks(self, data_dir: Path) -> None:
        """Snapshot holds every record in chunk order; chunks are removed."""
        store = ChunkStore(data_dir)
        store.write_chunk("regulation-G", _cards("sv1-10", "sv1-11"), 10)
        store.write_chunk("regulation-G", _cards("sv1-1", "sv1-2"), 1)
        store.write_chunk("regulation-G", _cards("sv1-5"), 2)

        snapshot = store.merge_group("regulation-G")

        assert snapshot == data_dir / "regulation-G-snapshot.json"
        assert [r["api_id"] for r in _read(snapshot)] == [
            "sv1-1",
            "sv1-2",
            "sv1-5",
            "sv1-10",
            "sv1-11",
        ]
        assert store.chunk_numbers("regulation-G") == []

    def test_duplicates_keep_latest_content(self, data_dir: Path) -> None:
        """A repeated api_id appears once, at its first position, with the later data."""
        store = ChunkStore(data_dir)
        store.write_chunk("regulation-G", _cards("sv1-1", "sv1-2", name="Old"), 1)
        store.write_chunk("regulation-G", _cards("sv1-1", name="New"), 2)

        records = _read(store.merge_group("regulation-G"))

        assert [r["api_id"] for r in records] == ["sv1-1", "sv1-2"]
        assert records[0]["name"] == "New"

    def test_no_chunks_raises(self, data_dir: Path) -> None:
        with pytest.raises(ChunkMergeError, match="No chunks"):
            ChunkStore(data_dir).merge_group("regulation-G")

    def test_corrupt_chunk_aborts_without_deleting(self, data_dir: Path) -> None:
        """An unreadable chunk stops the merge before any file is touched."""
        store = ChunkStore(data_dir)
        store.write_chunk("regulation-G", _cards("sv1-1"), 1)
        (data_dir / "regulation-G-chunk-2.json").write_text("[{not json", encoding="utf-8")

        with pytest.raises(ChunkMergeError, match="chunk-2"):
            store.merge_group("regulation-G")

        assert store.chunk_numbers("regulation-G") == [1, 2]
        assert not store.snapshot_path("regulation-G").exists()

    def test_non_array_chunk_aborts(self, data_dir: Path) -> None:
        store = ChunkStore(data_dir)
        (data_dir / "regulation-G-chunk-1.json").write_text('{"data": []}', encoding="utf-8")

        with pytest.raises(ChunkMergeError):
            store.merge_group("regulation-G")

        assert store.chunk_numbers("regulation-G") == [1]

    def test_cleanup_failure_is_checkpoint_error(self, data_dir: Path) -> None:
        """The snapshot is written; a chunk that cannot be removed is reported."""
        store = ChunkStore(data_dir)
        store.write_chunk("regulation-G", _cards("sv1-1"), 1)

        with patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
            with pytest.raises(CheckpointError, match="chunk-1"):
                store.merge_group("regulation-G")

        assert store.snapshot_path("regulation-G").exists()


class TestSnapshot:
    def test_write_snapshot_directly(self, data_dir: Path) -> None:
        """Single-request sources write the snapshot without chunks."""
        path = ChunkStore(data_dir).write_snapshot("yugioh-all", _cards("1", "2"))

        assert path.name == "yugioh-all-snapshot.json"
        assert len(_read(path)) == 2
