"""
Deck import service.

Upserts decks from the upstream deck dumps and links their card lists
through the reference resolver.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardnexus.db.operations import upsert_deck
from cardnexus.models.card import GAME_POKEMON, DeckRecord
from cardnexus.services.resolver import LinkTarget, ResolutionError, resolve_child

logger = logging.getLogger(__name__)


@dataclass
class DeckImportReport:
    """Outcome of a deck import run."""

    decks_created: int = 0
    decks_updated: int = 0
    decks_failed: int = 0
    cards_linked: int = 0
    placeholders_linked: int = 0
    links_failed: int = 0

    def merge(self, other: "DeckImportReport") -> None:
        self.decks_created += other.decks_created
        self.decks_updated += other.decks_updated
        self.decks_failed += other.decks_failed
        self.cards_linked += other.cards_linked
        self.placeholders_linked += other.placeholders_linked
        self.links_failed += other.links_failed


def deck_to_row(deck: DeckRecord, game_title: str) -> dict[str, Any]:
    """Map a deck record onto decks table columns."""
    return {
        "id": deck.id,
        "name": deck.name,
        "game_title": game_title,
        "types": ", ".join(deck.types) if deck.types else None,
        "format": "Standard",
        "description": f"Imported deck: {deck.name}",
    }


async def _import_deck(
    session: AsyncSession, deck: DeckRecord, game_title: str
) -> DeckImportReport:
    """Upsert one deck and resolve every card entry in its own savepoint."""
    report = DeckImportReport()
    _, created = await upsert_deck(session, deck_to_row(deck, game_title))

    linked = 0
    missing = 0
    for entry in deck.cards:
        try:
            async with session.begin_nested():
                result = await resolve_child(session, deck.id, entry, game_title)
        except (ResolutionError, SQLAlchemyError) as e:
            report.links_failed += 1
            logger.error("Failed to link card %s in deck %s: %s", entry.api_id, deck.id, e)
            continue

        if result.target is LinkTarget.CARD:
            linked += 1
        else:
            missing += 1

    report.cards_linked += linked
    report.placeholders_linked += missing
    if created:
        report.decks_created += 1
    else:
        report.decks_updated += 1

    logger.info(
        "Imported deck %s (%d linked, %d unregistered)", deck.name, linked, missing
    )
    return report


async def import_decks(
    session_factory: async_sessionmaker[AsyncSession],
    decks: Iterable[Any],
    game_title: str = GAME_POKEMON,
) -> DeckImportReport:
    """
    Import decks with their card lists.

    Each deck is committed on its own; a deck that fails is rolled back
    and counted without affecting the others.

    Args:
        session_factory: Session factory for the target database
        decks: Raw deck dicts ({id, name, types, cards: [{id, name, count}]})
        game_title: Game the decks belong to

    Returns:
        DeckImportReport with deck and link counts
    """
    report = DeckImportReport()

    for raw in decks:
        try:
            deck = DeckRecord.model_validate(raw)
        except ValidationError as e:
            report.decks_failed += 1
            deck_name = raw.get("name") if isinstance(raw, dict) else None
            logger.error("Skipping malformed deck %s: %s", deck_name or "<unknown>", e)
            continue

        async with session_factory() as session:
            try:
                deck_report = await _import_deck(session, deck, game_title)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                report.decks_failed += 1
                logger.error("Failed to import deck %s: %s", deck.name, e)
            else:
                report.merge(deck_report)

    logger.info(
        "Deck import complete: %d created, %d updated, %d failed, "
        "%d cards linked, %d unregistered, %d links failed",
        report.decks_created,
        report.decks_updated,
        report.decks_failed,
        report.cards_linked,
        report.placeholders_linked,
        report.links_failed,
    )
    return report
