"""
Card Nexus services.

Import of normalized cards and decks into the database.
"""

from cardnexus.services.deck_importer import DeckImportReport, deck_to_row, import_decks
from cardnexus.services.importer import (
    ImportReport,
    SnapshotFormatError,
    card_to_row,
    import_cards,
    import_snapshot,
    load_snapshot,
)
from cardnexus.services.resolver import (
    LinkResult,
    LinkTarget,
    ResolutionError,
    expansion_from_external_id,
    resolve_child,
)

__all__ = [
    "DeckImportReport",
    "ImportReport",
    "LinkResult",
    "LinkTarget",
    "ResolutionError",
    "SnapshotFormatError",
    "card_to_row",
    "deck_to_row",
    "expansion_from_external_id",
    "import_cards",
    "import_decks",
    "import_snapshot",
    "load_snapshot",
    "resolve_child",
]
