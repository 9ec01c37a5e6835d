"""
Database upsert operations.

Every write the pipeline makes goes through one of these functions and
is keyed on a natural identifier, so repeating a write converges on the
same row instead of adding another.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardnexus.models.db import (
    Base,
    CardDB,
    DeckCardDB,
    DeckDB,
    DeckUnregisteredCardDB,
    UnregisteredCardDB,
)


def _now() -> datetime:
    return datetime.now(UTC)


# --- Card Operations ---


async def get_card_by_api_id(session: AsyncSession, api_id: str) -> CardDB | None:
    """
    Get a card by its upstream id.

    Returns None if the card has not been imported.
    """
    result = await session.execute(select(CardDB).where(CardDB.api_id == api_id))
    return result.scalar_one_or_none()


async def upsert_card(session: AsyncSession, row: dict[str, Any]) -> tuple[CardDB, bool]:
    """
    Insert or update a card keyed by row["api_id"].

    An existing card has every mapped field overwritten and updated_at
    bumped.

    Returns:
        Tuple of (card, created) where created is True if new.
    """
    existing = await get_card_by_api_id(session, row["api_id"])

    if existing:
        for key, value in row.items():
            setattr(existing, key, value)
        existing.updated_at = _now()
        await session.flush()
        return existing, False

    card = CardDB(**row)
    session.add(card)
    await session.flush()
    return card, True


# --- Deck Operations ---


async def get_deck(session: AsyncSession, deck_id: str) -> DeckDB | None:
    """Get a deck by its external id."""
    return await session.get(DeckDB, deck_id)


async def upsert_deck(session: AsyncSession, row: dict[str, Any]) -> tuple[DeckDB, bool]:
    """
    Insert or update a deck keyed by row["id"].

    Returns:
        Tuple of (deck, created) where created is True if new.
    """
    existing = await get_deck(session, row["id"])

    if existing:
        for key, value in row.items():
            if key != "id":
                setattr(existing, key, value)
        existing.updated_at = _now()
        await session.flush()
        return existing, False

    deck = DeckDB(**row)
    session.add(deck)
    await session.flush()
    return deck, True


async def upsert_deck_card(
    session: AsyncSession, deck_id: str, card_id: int, quantity: int
) -> tuple[DeckCardDB, bool]:
    """Link a deck to an imported card, keyed by (deck_id, card_id)."""
    result = await session.execute(
        select(DeckCardDB).where(
            DeckCardDB.deck_id == deck_id,
            DeckCardDB.card_id == card_id,
        )
    )
    existing = result.scalar_one_or_none()

    if existing:
        existing.quantity = quantity
        await session.flush()
        return existing, False

    link = DeckCardDB(deck_id=deck_id, card_id=card_id, quantity=quantity)
    session.add(link)
    await session.flush()
    return link, True


# --- Unregistered Card Operations ---


async def upsert_unregistered_card(
    session: AsyncSession,
    *,
    name: str,
    card_number: str,
    expansion: str,
    game_title: str,
    rarity: str | None = None,
) -> tuple[UnregisteredCardDB, bool]:
    """
    Insert or update a placeholder card keyed by (name, card_number, expansion).

    Returns:
        Tuple of (placeholder, created) where created is True if new.
    """
    result = await session.execute(
        select(UnregisteredCardDB).where(
            UnregisteredCardDB.name == name,
            UnregisteredCardDB.card_number == card_number,
            UnregisteredCardDB.expansion == expansion,
        )
    )
    existing = result.scalar_one_or_none()

    if existing:
        existing.rarity = rarity
        existing.updated_at = _now()
        await session.flush()
        return existing, False

    placeholder = UnregisteredCardDB(
        name=name,
        card_number=card_number,
        expansion=expansion,
        game_title=game_title,
        rarity=rarity,
    )
    session.add(placeholder)
    await session.flush()
    return placeholder, True


async def upsert_deck_unregistered_card(
    session: AsyncSession, deck_id: str, unregistered_card_id: int, quantity: int
) -> tuple[DeckUnregisteredCardDB, bool]:
    """Link a deck to a placeholder card, keyed by (deck_id, unregistered_card_id)."""
    result = await session.execute(
        select(DeckUnregisteredCardDB).where(
            DeckUnregisteredCardDB.deck_id == deck_id,
            DeckUnregisteredCardDB.unregistered_card_id == unregistered_card_id,
        )
    )
    existing = result.scalar_one_or_none()

    if existing:
        existing.quantity = quantity
        await session.flush()
        return existing, False

    link = DeckUnregisteredCardDB(
        deck_id=deck_id, unregistered_card_id=unregistered_card_id, quantity=quantity
    )
    session.add(link)
    await session.flush()
    return link, True


async def count_rows(session: AsyncSession, model: type[Base]) -> int:
    """Row count for any mapped table."""
    result = await session.execute(select(func.count()).select_from(model))
    return int(result.scalar_one())
