"""
Per-source normalization into NormalizedCard.

Each upstream API shapes cards differently (Pokemon TCG nests set data and
sends HP as a string, YGOPRODeck lists printings under card_sets, ...).
One normalizer per source maps its shape onto the canonical record; the
rest of the pipeline only ever sees NormalizedCard.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cardnexus.models.card import (
    GAME_POKEMON,
    GAME_YUGIOH,
    NormalizedCard,
    TransformError,
)

logger = logging.getLogger(__name__)


class SourceKind(str, Enum):
    """Upstream data sources with a dedicated normalizer."""

    POKEMON_TCG_API = "pokemon-tcg-api"
    POKEMON_TCG_GITHUB = "github"
    YGOPRODECK = "ygoprodeck"


def _first(items: Any, key: str) -> Any:
    """items[0][key] for a list of dicts, None when absent."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0].get(key)
    return None


def _require_identity(raw: Any) -> tuple[str, str]:
    if not isinstance(raw, dict):
        raise TransformError(f"Expected an object, got {type(raw).__name__}")
    card_id = raw.get("id")
    name = raw.get("name")
    external_id = str(card_id) if card_id not in (None, "") else None
    if external_id is None:
        raise TransformError("Card has no id")
    if not isinstance(name, str) or not name.strip():
        raise TransformError("Card has no name", external_id=external_id)
    return external_id, name


def _object(raw: dict[str, Any], key: str, external_id: str) -> dict[str, Any]:
    """raw[key] as a dict; empty when absent."""
    value = raw.get(key)
    if value is None or value == "":
        return {}
    if not isinstance(value, dict):
        raise TransformError(
            f"Field {key!r} should be an object, got {type(value).__name__}",
            external_id=external_id,
        )
    return value


def _build(external_id: str, **fields: Any) -> NormalizedCard:
    return NormalizedCard.from_mapping({"api_id": external_id, **fields})


def normalize_pokemon_api(raw: dict[str, Any], group: str) -> NormalizedCard:
    """Map a Pokemon TCG API v2 card."""
    external_id, name = _require_identity(raw)
    card_set = _object(raw, "set", external_id)
    images = _object(raw, "images", external_id)

    return _build(
        external_id,
        name=name,
        game_title=GAME_POKEMON,
        card_type=raw.get("supertype"),
        subtypes=raw.get("subtypes"),
        types=raw.get("types"),
        rarity=raw.get("rarity"),
        regulation_mark=raw.get("regulationMark") or group,
        effect_text=_first(raw.get("abilities"), "text") or _first(raw.get("attacks"), "text"),
        flavor_text=raw.get("flavorText"),
        card_number=raw.get("number"),
        expansion=card_set.get("name"),
        set_code=card_set.get("id"),
        release_date=card_set.get("releaseDate"),
        hp=raw.get("hp"),
        evolves_from=raw.get("evolvesFrom"),
        artist=raw.get("artist"),
        image_url=images.get("large") or images.get("small"),
        legalities=raw.get("legalities"),
        abilities=raw.get("abilities"),
        attacks=raw.get("attacks"),
        weaknesses=raw.get("weaknesses"),
        resistances=raw.get("resistances"),
        retreat_cost=raw.get("retreatCost"),
        rules=raw.get("rules"),
        national_pokedex_numbers=raw.get("nationalPokedexNumbers"),
        source=SourceKind.POKEMON_TCG_API.value,
    )


def normalize_pokemon_github(raw: dict[str, Any], group: str, set_code: str = "") -> NormalizedCard:
    """
    Map a card from the pokemon-tcg-data dump on GitHub.

    Same field names as the API, but the set is implied by the file the
    card came from, so set_code is passed in.
    """
    external_id, name = _require_identity(raw)
    images = _object(raw, "images", external_id)

    return _build(
        external_id,
        name=name,
        game_title=GAME_POKEMON,
        card_type=raw.get("supertype"),
        subtypes=raw.get("subtypes"),
        types=raw.get("types"),
        rarity=raw.get("rarity"),
        regulation_mark=raw.get("regulationMark") or group,
        effect_text=_first(raw.get("abilities"), "text") or _first(raw.get("attacks"), "text"),
        flavor_text=raw.get("flavorText"),
        card_number=raw.get("number"),
        expansion=set_code or external_id.split("-")[0],
        set_code=set_code or None,
        hp=raw.get("hp"),
        evolves_from=raw.get("evolvesFrom"),
        artist=raw.get("artist"),
        image_url=images.get("large") or images.get("small"),
        legalities=raw.get("legalities"),
        abilities=raw.get("abilities"),
        attacks=raw.get("attacks"),
        weaknesses=raw.get("weaknesses"),
        resistances=raw.get("resistances"),
        retreat_cost=raw.get("retreatCost"),
        rules=raw.get("rules"),
        national_pokedex_numbers=raw.get("nationalPokedexNumbers"),
        source=SourceKind.POKEMON_TCG_GITHUB.value,
    )


def normalize_ygoprodeck(raw: dict[str, Any], group: str) -> NormalizedCard:
    """
    Map a YGOPRODeck cardinfo record.

    The first listed printing supplies expansion and rarity. Monster stats
    have no shared column and go into extra.
    """
    external_id, name = _require_identity(raw)
    card_type = raw.get("type") or ""
    if not isinstance(card_type, str):
        raise TransformError("Field 'type' should be a string", external_id=external_id)

    effect_text = raw.get("desc")
    if raw.get("scale") is not None:
        effect_text = f"[Pendulum Scale: {raw['scale']}]\n{effect_text or ''}"

    if "Spell" in card_type:
        category = "spell"
    elif "Trap" in card_type:
        category = "trap"
    else:
        category = "monster"

    banlist = _object(raw, "banlist_info", external_id)
    linkmarkers = raw.get("linkmarkers")
    if linkmarkers and not (
        isinstance(linkmarkers, list) and all(isinstance(m, str) for m in linkmarkers)
    ):
        raise TransformError(
            "Field 'linkmarkers' should be a list of strings", external_id=external_id
        )

    return _build(
        external_id,
        name=name,
        game_title=GAME_YUGIOH,
        card_type=card_type or None,
        rarity=_first(raw.get("card_sets"), "set_rarity"),
        effect_text=effect_text,
        card_number=external_id,
        expansion=_first(raw.get("card_sets"), "set_name"),
        image_url=_first(raw.get("card_images"), "image_url"),
        extra={
            "category": category,
            "attribute": raw.get("attribute"),
            "race": raw.get("race"),
            "level": raw.get("level"),
            "link": raw.get("linkval"),
            "link_markers": ",".join(linkmarkers) if linkmarkers else None,
            "pendulum_scale": raw.get("scale"),
            "atk": raw.get("atk"),
            "def": raw.get("def"),
            "archetype": raw.get("archetype"),
            "ban_status": banlist.get("ban_ocg") or banlist.get("ban_tcg"),
        },
        source=SourceKind.YGOPRODECK.value,
    )


Normalizer = Callable[[dict[str, Any], str], NormalizedCard]

_NORMALIZERS: dict[SourceKind, Normalizer] = {
    SourceKind.POKEMON_TCG_API: normalize_pokemon_api,
    SourceKind.POKEMON_TCG_GITHUB: normalize_pokemon_github,
    SourceKind.YGOPRODECK: normalize_ygoprodeck,
}


def normalize_record(source: SourceKind, raw: dict[str, Any], group: str) -> NormalizedCard:
    """
    Normalize one raw record from the given source.

    Raises:
        TransformError: If the record is missing its identity or is malformed
    """
    return _NORMALIZERS[source](raw, group)


@dataclass
class NormalizedBatch:
    """Outcome of normalizing a page of raw records."""

    cards: list[NormalizedCard] = field(default_factory=list)
    skipped: int = 0


def normalize_page(
    records: Iterable[dict[str, Any]],
    normalize: Callable[[dict[str, Any]], NormalizedCard],
) -> NormalizedBatch:
    """
    Normalize a page, skipping records that fail to transform.

    A bad record is logged and counted; it never aborts the page.
    """
    batch = NormalizedBatch()
    for raw in records:
        try:
            batch.cards.append(normalize(raw))
        except TransformError as e:
            batch.skipped += 1
            logger.warning("Skipping card %s: %s", e.external_id or "<unknown>", e)
    return batch
