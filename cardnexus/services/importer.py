"""
Card import service.

Reads a snapshot (or records straight from an API) and upserts each card
into the cards table keyed by its upstream id. Failures are counted per
record; one bad card never aborts its batch or the run.
"""

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardnexus.db.operations import count_rows, upsert_card
from cardnexus.models.card import NormalizedCard, TransformError
from cardnexus.models.db import CardDB

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


class SnapshotFormatError(Exception):
    """Raised when a snapshot file is neither an array nor {"data": array}."""

    pass


@dataclass
class ImportReport:
    """Outcome of an import run."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    total_in_db: int | None = None

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.failed


def load_snapshot(path: Path) -> list[Any]:
    """
    Load the records of a snapshot file.

    Accepts a bare JSON array or an object with a "data" array.

    Raises:
        FileNotFoundError: If the file doesn't exist
        SnapshotFormatError: If the JSON has neither shape
    """
    with open(path, encoding="utf-8") as f:
        try:
            parsed = json.load(f)
        except json.JSONDecodeError as e:
            raise SnapshotFormatError(f"{path.name} is not valid JSON: {e}") from e

    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("data"), list):
        return parsed["data"]

    raise SnapshotFormatError(f"{path.name}: expected an array or {{data: array}}")


def _join(values: list[str]) -> str | None:
    return ", ".join(values) if values else None


def card_to_row(card: NormalizedCard) -> dict[str, Any]:
    """
    Map a normalized card onto cards table columns.

    String lists (types, subtypes) are flattened to comma-separated text;
    nested structures stay JSON.
    """
    return {
        "api_id": card.api_id,
        "name": card.name,
        "game_title": card.game_title,
        "card_type": card.card_type,
        "subtypes": _join(card.subtypes),
        "types": _join(card.types),
        "rarity": card.rarity,
        "regulation_mark": card.regulation_mark,
        "effect_text": card.effect_text,
        "flavor_text": card.flavor_text,
        "card_number": card.card_number,
        "expansion": card.expansion,
        "set_code": card.set_code,
        "release_date": card.release_date,
        "hp": card.hp,
        "evolves_from": card.evolves_from,
        "artist": card.artist,
        "image_url": card.image_url,
        "source": card.source,
        "legalities": card.legalities,
        "abilities": card.abilities,
        "attacks": card.attacks,
        "weaknesses": card.weaknesses,
        "resistances": card.resistances,
        "retreat_cost": card.retreat_cost,
        "rules": card.rules,
        "national_pokedex_numbers": card.national_pokedex_numbers,
        "extra": card.extra,
    }


def _describe(record: Any) -> str:
    if isinstance(record, NormalizedCard):
        return record.api_id
    if isinstance(record, dict):
        return str(record.get("api_id") or record.get("name") or "<unknown>")
    return "<unknown>"


async def _import_one(session: AsyncSession, record: Any, report: ImportReport) -> None:
    """Upsert one record inside its own savepoint."""
    try:
        card = NormalizedCard.from_mapping(record)
        async with session.begin_nested():
            _, created = await upsert_card(session, card_to_row(card))
    except TransformError as e:
        report.failed += 1
        logger.warning("Skipping card %s: %s", e.external_id or _describe(record), e)
        return
    except SQLAlchemyError as e:
        report.failed += 1
        logger.error("Failed to import card %s: %s", _describe(record), e)
        return

    if created:
        report.created += 1
    else:
        report.updated += 1


async def import_cards(
    session_factory: async_sessionmaker[AsyncSession],
    records: Iterable[Any],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> ImportReport:
    """
    Upsert cards in fixed-size batches.

    Each batch runs in its own session and is committed on completion;
    each record gets a savepoint so a failed insert only rolls back itself.

    Args:
        session_factory: Session factory for the target database
        records: NormalizedCard instances or snapshot rows (dicts)
        batch_size: Records per batch and commit

    Returns:
        ImportReport with created/updated/failed counts
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    items: Sequence[Any] = records if isinstance(records, Sequence) else list(records)
    total_batches = (len(items) + batch_size - 1) // batch_size
    report = ImportReport()

    logger.info("Importing %d cards in %d batches of %d", len(items), total_batches, batch_size)

    for batch_index, start in enumerate(range(0, len(items), batch_size), start=1):
        batch = items[start : start + batch_size]

        async with session_factory() as session:
            for record in batch:
                await _import_one(session, record, report)
            await session.commit()

        logger.info(
            "Batch %d/%d complete (%d/%d processed)",
            batch_index,
            total_batches,
            report.processed,
            len(items),
        )

    async with session_factory() as session:
        report.total_in_db = await count_rows(session, CardDB)

    logger.info(
        "Import complete: %d created, %d updated, %d failed, %d cards in database",
        report.created,
        report.updated,
        report.failed,
        report.total_in_db,
    )
    return report


async def import_snapshot(
    session_factory: async_sessionmaker[AsyncSession],
    path: Path,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> ImportReport:
    """Load a snapshot file and import its cards."""
    records = load_snapshot(path)
    logger.info("Loaded %d records from %s", len(records), path.name)
    return await import_cards(session_factory, records, batch_size)
