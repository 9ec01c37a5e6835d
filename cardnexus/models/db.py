"""
SQLAlchemy ORM models for persistent storage.

Only the tables the ingestion pipeline reads and writes: cards, decks,
the links between them, and placeholder rows for cards a deck mentions
before they have been imported.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class CardDB(TimestampMixin, Base):
    """
    A card imported from an upstream source.

    Keyed for upserts by api_id, the identifier the source assigned.
    """

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    game_title: Mapped[str] = mapped_column(String(50), index=True)

    card_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    subtypes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    types: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rarity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    regulation_mark: Mapped[str | None] = mapped_column(String(10), nullable=True, index=True)
    effect_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    flavor_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    card_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    expansion: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    release_date: Mapped[str | None] = mapped_column(String(20), nullable=True)
    hp: Mapped[int | None] = mapped_column(Integer, nullable=True)
    evolves_from: Mapped[str | None] = mapped_column(String(255), nullable=True)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Nested source structures stored as JSON
    legalities: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    abilities: Mapped[list[Any]] = mapped_column(JSON, default=list)
    attacks: Mapped[list[Any]] = mapped_column(JSON, default=list)
    weaknesses: Mapped[list[Any]] = mapped_column(JSON, default=list)
    resistances: Mapped[list[Any]] = mapped_column(JSON, default=list)
    retreat_cost: Mapped[list[Any]] = mapped_column(JSON, default=list)
    rules: Mapped[list[Any]] = mapped_column(JSON, default=list)
    national_pokedex_numbers: Mapped[list[Any]] = mapped_column(JSON, default=list)
    extra: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    def __repr__(self) -> str:
        return f"<CardDB(api_id={self.api_id}, name={self.name})>"


class DeckDB(TimestampMixin, Base):
    """A deck imported from an upstream deck dump, keyed by its external id."""

    __tablename__ = "decks"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    game_title: Mapped[str] = mapped_column(String(50))
    types: Mapped[str | None] = mapped_column(String(255), nullable=True)
    format: Mapped[str] = mapped_column(String(50), default="Standard")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    cards: Mapped[list["DeckCardDB"]] = relationship(
        back_populates="deck", cascade="all, delete-orphan"
    )
    unregistered_cards: Mapped[list["DeckUnregisteredCardDB"]] = relationship(
        back_populates="deck", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<DeckDB(id={self.id}, name={self.name})>"


class DeckCardDB(TimestampMixin, Base):
    """A deck slot pointing at an imported card."""

    __tablename__ = "deck_cards"
    __table_args__ = (
        UniqueConstraint("deck_id", "card_id", name="uq_deck_card"),
        CheckConstraint("quantity >= 1", name="ck_deck_card_quantity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deck_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("decks.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[int] = mapped_column(Integer, ForeignKey("cards.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    deck: Mapped["DeckDB"] = relationship(back_populates="cards")

    def __repr__(self) -> str:
        return f"<DeckCardDB(deck={self.deck_id}, card={self.card_id}, qty={self.quantity})>"


class UnregisteredCardDB(TimestampMixin, Base):
    """
    Placeholder for a card referenced by a deck but not imported yet.

    Keyed by (name, card_number, expansion) where card_number holds the
    external id the deck used.
    """

    __tablename__ = "unregistered_cards"
    __table_args__ = (
        UniqueConstraint("name", "card_number", "expansion", name="uq_unregistered_card"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    game_title: Mapped[str] = mapped_column(String(50))
    card_number: Mapped[str] = mapped_column(String(100), index=True)
    expansion: Mapped[str] = mapped_column(String(100), default="")
    types: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rarity: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<UnregisteredCardDB(name={self.name}, card_number={self.card_number})>"


class DeckUnregisteredCardDB(TimestampMixin, Base):
    """A deck slot pointing at a placeholder card."""

    __tablename__ = "deck_unregistered_cards"
    __table_args__ = (
        UniqueConstraint("deck_id", "unregistered_card_id", name="uq_deck_unregistered_card"),
        CheckConstraint("quantity >= 1", name="ck_deck_unregistered_card_quantity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deck_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("decks.id", ondelete="CASCADE"), index=True
    )
    unregistered_card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("unregistered_cards.id"), index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    deck: Mapped["DeckDB"] = relationship(back_populates="unregistered_cards")

    def __repr__(self) -> str:
        return (
            f"<DeckUnregisteredCardDB(deck={self.deck_id}, "
            f"card={self.unregistered_card_id}, qty={self.quantity})>"
        )
