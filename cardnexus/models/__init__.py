from cardnexus.models.card import (
    GAME_POKEMON,
    GAME_YUGIOH,
    DeckEntry,
    DeckRecord,
    NormalizedCard,
    TransformError,
)
from cardnexus.models.db import (
    Base,
    CardDB,
    DeckCardDB,
    DeckDB,
    DeckUnregisteredCardDB,
    UnregisteredCardDB,
)

__all__ = [
    "GAME_POKEMON",
    "GAME_YUGIOH",
    "Base",
    "CardDB",
    "DeckCardDB",
    "DeckDB",
    "DeckEntry",
    "DeckRecord",
    "DeckUnregisteredCardDB",
    "NormalizedCard",
    "TransformError",
    "UnregisteredCardDB",
]
