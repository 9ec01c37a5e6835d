"""Tests for the deck import service."""

from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardnexus.db.operations import count_rows
from cardnexus.ingest.normalize import normalize_pokemon_api
from cardnexus.models.card import DeckRecord
from cardnexus.models.db import (
    DeckCardDB,
    DeckDB,
    DeckUnregisteredCardDB,
    UnregisteredCardDB,
)
from cardnexus.services import resolver
from cardnexus.services.deck_importer import deck_to_row, import_decks
from cardnexus.services.importer import import_cards


def _card_row(raw_card_factory, index: int) -> dict:
    return normalize_pokemon_api(raw_card_factory(index), "G").to_json_dict()


def _deck(deck_id: str = "d-1", cards: list[dict] | None = None) -> dict:
    return {
        "id": deck_id,
        "name": f"Deck {deck_id}",
        "types": ["Fire"],
        "cards": cards
        if cards is not None
        else [
            {"id": "sv1-1", "name": "Test Pokemon 1", "count": 4, "rarity": "Common"},
            {"id": "xyz-99", "name": "Mystery Card", "count": 2},
        ],
    }


class TestDeckToRow:
    def test_defaults(self) -> None:
        row = deck_to_row(DeckRecord.model_validate(_deck()), "pokemon")

        assert row["format"] == "Standard"
        assert row["description"] == "Imported deck: Deck d-1"
        assert row["types"] == "Fire"


class TestImportDecks:
    async def test_links_known_and_unknown_cards(
        self, session_factory: async_sessionmaker[AsyncSession], raw_card_factory
    ) -> None:
        """Known cards are linked directly; unknown ones through placeholders."""
        await import_cards(session_factory, [_card_row(raw_card_factory, 1)])

        report = await import_decks(session_factory, [_deck()])

        assert report.decks_created == 1
        assert report.cards_linked == 1
        assert report.placeholders_linked == 1
        async with session_factory() as session:
            assert await count_rows(session, DeckCardDB) == 1
            assert await count_rows(session, DeckUnregisteredCardDB) == 1

    async def test_reimport_updates(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Importing the same deck twice converges on the same rows."""
        await import_decks(session_factory, [_deck()])
        report = await import_decks(session_factory, [_deck()])

        assert report.decks_created == 0
        assert report.decks_updated == 1
        async with session_factory() as session:
            assert await count_rows(session, DeckDB) == 1
            assert await count_rows(session, UnregisteredCardDB) == 2
            assert await count_rows(session, DeckUnregisteredCardDB) == 2

    async def test_bad_entry_counted_not_fatal(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """A zero-quantity entry fails alone; the deck and other entries survive."""
        cards = [
            {"id": "xyz-1", "name": "A", "count": 0},
            {"id": "xyz-2", "name": "B", "count": 1},
        ]

        report = await import_decks(session_factory, [_deck(cards=cards)])

        assert report.decks_created == 1
        assert report.links_failed == 1
        assert report.placeholders_linked == 1

    async def test_malformed_deck_skipped(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        report = await import_decks(session_factory, [{"name": "No id"}, _deck("d-2")])

        assert report.decks_failed == 1
        assert report.decks_created == 1
        async with session_factory() as session:
            deck = (await session.execute(select(DeckDB))).scalar_one()
        assert deck.id == "d-2"

    async def test_database_error_rolls_back_only_that_entry(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """A failed placeholder write is undone without losing the deck or other links."""
        real_upsert = resolver.upsert_unregistered_card

        async def failing_upsert(session: AsyncSession, **fields):
            result = await real_upsert(session, **fields)
            if fields["name"] == "B":
                raise IntegrityError("INSERT INTO unregistered_cards", {}, Exception("failed"))
            return result

        cards = [
            {"id": "xyz-1", "name": "A", "count": 1},
            {"id": "xyz-2", "name": "B", "count": 1},
        ]
        with patch("cardnexus.services.resolver.upsert_unregistered_card", new=failing_upsert):
            report = await import_decks(session_factory, [_deck(cards=cards)])

        assert report.decks_created == 1
        assert report.links_failed == 1
        assert report.placeholders_linked == 1
        async with session_factory() as session:
            names = (await session.execute(select(UnregisteredCardDB.name))).scalars().all()
            assert names == ["A"]
            assert await count_rows(session, DeckUnregisteredCardDB) == 1
            assert await count_rows(session, DeckDB) == 1
