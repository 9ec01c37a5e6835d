from cardnexus.db.operations import (
    count_rows,
    get_card_by_api_id,
    get_deck,
    upsert_card,
    upsert_deck,
    upsert_deck_card,
    upsert_deck_unregistered_card,
    upsert_unregistered_card,
)

__all__ = [
    "count_rows",
    "get_card_by_api_id",
    "get_deck",
    "upsert_card",
    "upsert_deck",
    "upsert_deck_card",
    "upsert_deck_unregistered_card",
    "upsert_unregistered_card",
]
