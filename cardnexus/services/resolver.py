"""
Deck card reference resolution.

Deck dumps reference cards by upstream id. A reference that matches an
imported card is linked to it; one that doesn't is linked to a
placeholder (unregistered card) instead, so a deck import never fails
just because its cards were not imported first.

Known limitation: once the real card is imported later, existing
placeholder links are left as they are. Nothing repoints them.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from cardnexus.db.operations import (
    get_card_by_api_id,
    upsert_deck_card,
    upsert_deck_unregistered_card,
    upsert_unregistered_card,
)
from cardnexus.models.card import GAME_POKEMON, DeckEntry

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """Raised when a deck entry cannot be linked at all."""

    pass


class LinkTarget(str, Enum):
    CARD = "card"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class LinkResult:
    """Where a deck entry ended up."""

    target: LinkTarget
    target_id: int
    created: bool  # False when an existing link was updated


def expansion_from_external_id(external_id: str) -> str:
    """
    Grouping code embedded in an upstream card id.

    "sv1-25" -> "sv1", "swsh12pt5-160" -> "swsh12pt5". Ids without a dash
    are returned whole.
    """
    return external_id.split("-", 1)[0]


async def resolve_child(
    session: AsyncSession,
    deck_id: str,
    entry: DeckEntry,
    game_title: str = GAME_POKEMON,
) -> LinkResult:
    """
    Link a deck entry to its card, or to a placeholder if the card is missing.

    Both paths are upserts keyed on (deck, target), so resolving the same
    entry again only refreshes the quantity.

    Raises:
        ResolutionError: If the entry's quantity is below 1
    """
    if entry.count < 1:
        raise ResolutionError(
            f"Deck {deck_id}: card {entry.api_id} has quantity {entry.count}, expected >= 1"
        )

    card = await get_card_by_api_id(session, entry.api_id)
    if card is not None:
        _, created = await upsert_deck_card(session, deck_id, card.id, entry.count)
        return LinkResult(target=LinkTarget.CARD, target_id=card.id, created=created)

    placeholder, _ = await upsert_unregistered_card(
        session,
        name=entry.name,
        card_number=entry.api_id,
        expansion=expansion_from_external_id(entry.api_id),
        game_title=game_title,
        rarity=entry.rarity,
    )
    _, created = await upsert_deck_unregistered_card(
        session, deck_id, placeholder.id, entry.count
    )

    logger.warning(
        "Card %s (%s) not found; deck %s linked to unregistered card %d",
        entry.api_id,
        entry.name,
        deck_id,
        placeholder.id,
    )
    return LinkResult(target=LinkTarget.PLACEHOLDER, target_id=placeholder.id, created=created)
