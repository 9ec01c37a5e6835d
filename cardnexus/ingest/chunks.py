"""
On-disk checkpoints for fetched card data.

A fetch run writes numbered chunk files as it goes:

    data/pokemon-cards/regulation-G-chunk-1.json
    data/pokemon-cards/regulation-G-chunk-2.json

and merges them into one snapshot when it finishes:

    data/pokemon-cards/regulation-G-snapshot.json

Files are JSON arrays of NormalizedCard, UTF-8, pretty-printed. Every
write goes to a temporary file first and is renamed into place, so a
chunk is either complete or absent.
"""

import json
import logging
import os
import re
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from cardnexus.models.card import NormalizedCard

logger = logging.getLogger(__name__)


class CheckpointError(Exception):
    """Raised when chunk or snapshot files cannot be written."""

    pass


class ChunkMergeError(Exception):
    """Raised when a group's chunks cannot be merged. No chunk is deleted."""

    pass


def _record_key(record: dict[str, Any]) -> str | None:
    api_id = record.get("api_id")
    return str(api_id) if api_id is not None else None


class ChunkStore:
    """Chunk and snapshot files for one data directory."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    def chunk_path(self, group: str, chunk_number: int) -> Path:
        return self.data_dir / f"{group}-chunk-{chunk_number}.json"

    def snapshot_path(self, group: str) -> Path:
        return self.data_dir / f"{group}-snapshot.json"

    def _chunk_pattern(self, group: str) -> re.Pattern[str]:
        return re.compile(rf"^{re.escape(group)}-chunk-(\d+)\.json$")

    def chunk_numbers(self, group: str) -> list[int]:
        """Chunk numbers present for a group, in numeric order."""
        if not self.data_dir.exists():
            return []

        pattern = self._chunk_pattern(group)
        numbers = []
        for path in self.data_dir.iterdir():
            match = pattern.match(path.name)
            if match:
                numbers.append(int(match.group(1)))
        return sorted(numbers)

    def next_chunk_number(self, group: str) -> int:
        """First unused chunk number, after any chunks left by an earlier run."""
        numbers = self.chunk_numbers(group)
        return numbers[-1] + 1 if numbers else 1

    def _write_json(self, path: Path, payload: list[dict[str, Any]]) -> None:
        """Write via a temporary file in the same directory, then rename."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CheckpointError(f"Failed to write {path}: {e}") from e

    def write_chunk(
        self, group: str, records: Iterable[NormalizedCard], chunk_number: int
    ) -> Path:
        """
        Persist one chunk of normalized records.

        Re-writing an existing (group, chunk_number) replaces the file.

        Raises:
            ValueError: If records is empty or chunk_number < 1
            CheckpointError: If the file cannot be written
        """
        payload = [record.to_json_dict() for record in records]
        if not payload:
            raise ValueError("Refusing to write an empty chunk")
        if chunk_number < 1:
            raise ValueError(f"Chunk numbers start at 1, got {chunk_number}")

        path = self.chunk_path(group, chunk_number)
        self._write_json(path, payload)
        logger.info("Saved chunk %d: %d cards -> %s", chunk_number, len(payload), path.name)
        return path

    def write_snapshot(self, group: str, records: Iterable[NormalizedCard]) -> Path:
        """Write a snapshot directly, for sources fetched in one request."""
        payload = [record.to_json_dict() for record in records]
        path = self.snapshot_path(group)
        self._write_json(path, payload)
        logger.info("Saved snapshot: %d cards -> %s", len(payload), path)
        return path

    def _read_chunk(self, path: Path) -> list[dict[str, Any]]:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ChunkMergeError(f"Cannot read chunk {path.name}: {e}") from e

        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise ChunkMergeError(f"Chunk {path.name} is not a JSON array of objects")
        return data

    def merge_group(self, group: str) -> Path:
        """
        Merge all chunks of a group into its snapshot and delete them.

        Chunks are concatenated in numeric order (chunk-2 before chunk-10).
        Records sharing an api_id collapse into one entry at the position
        of the first occurrence, holding the latest content.

        Returns:
            Path to the snapshot

        Raises:
            ChunkMergeError: If there are no chunks or any chunk is unreadable
            CheckpointError: If the snapshot cannot be written or a merged chunk cannot be removed
        """
        numbers = self.chunk_numbers(group)
        if not numbers:
            raise ChunkMergeError(f"No chunks found for {group} in {self.data_dir}")

        paths = [self.chunk_path(group, n) for n in numbers]

        # Parse everything before touching any file
        chunks = [self._read_chunk(path) for path in paths]

        merged: dict[str, dict[str, Any]] = {}
        unkeyed: list[dict[str, Any]] = []
        total = 0
        for chunk in chunks:
            for record in chunk:
                total += 1
                key = _record_key(record)
                if key is None:
                    unkeyed.append(record)
                else:
                    merged[key] = record

        records = list(merged.values()) + unkeyed
        if len(records) < total:
            logger.info(
                "Dropped %d duplicate records while merging %s", total - len(records), group
            )

        snapshot = self.snapshot_path(group)
        self._write_json(snapshot, records)
        logger.info("Merged %d chunks: %d cards -> %s", len(paths), len(records), snapshot.name)

        for path in paths:
            try:
                path.unlink()
            except OSError as e:
                raise CheckpointError(
                    f"Merged into {snapshot.name} but failed to remove {path}: {e}"
                ) from e
        logger.info("Removed %d chunk files", len(paths))

        return snapshot
