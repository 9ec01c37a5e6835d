"""
Canonical card and deck records.

Every upstream source is normalized into NormalizedCard before it is
checkpointed or imported, so the storage mapping never has to branch on
which API a record came from.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

GAME_POKEMON = "pokemon"
GAME_YUGIOH = "yugioh"


class TransformError(Exception):
    """Raised when a record cannot be mapped into the canonical shape."""

    def __init__(self, message: str, external_id: str | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id


class NormalizedCard(BaseModel):
    """
    A card in storage field names and types.

    api_id and name are always present and non-blank. Nested structures
    (abilities, attacks, ...) keep their source shape; game-specific stats
    that have no shared column go into extra.
    """

    model_config = ConfigDict(extra="ignore")

    api_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    game_title: str = GAME_POKEMON
    card_type: str | None = None
    subtypes: list[str] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
    rarity: str | None = None
    regulation_mark: str | None = None
    effect_text: str | None = None
    flavor_text: str | None = None
    card_number: str | None = None
    expansion: str | None = None
    set_code: str | None = None
    release_date: str | None = None
    hp: int | None = None
    evolves_from: str | None = None
    artist: str | None = None
    image_url: str | None = None
    legalities: dict[str, Any] = Field(default_factory=dict)
    abilities: list[Any] = Field(default_factory=list)
    attacks: list[Any] = Field(default_factory=list)
    weaknesses: list[Any] = Field(default_factory=list)
    resistances: list[Any] = Field(default_factory=list)
    retreat_cost: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    national_pokedex_numbers: list[int] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)
    source: str | None = None

    @field_validator("api_id", "name", mode="before")
    @classmethod
    def _strip_required(cls, value: Any) -> Any:
        if isinstance(value, int):
            value = str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("hp", mode="before")
    @classmethod
    def _coerce_hp(cls, value: Any) -> Any:
        # Pokemon TCG API sends HP as a string ("120"); some sets use "" or "-"
        if isinstance(value, str):
            digits = value.strip()
            return int(digits) if digits.isdigit() else None
        return value

    @field_validator(
        "subtypes",
        "types",
        "abilities",
        "attacks",
        "weaknesses",
        "resistances",
        "retreat_cost",
        "rules",
        "national_pokedex_numbers",
        mode="before",
    )
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("legalities", "extra", mode="before")
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def from_mapping(cls, data: Any) -> "NormalizedCard":
        """
        Validate a snapshot row.

        Raises:
            TransformError: If required fields are missing or types are wrong
        """
        if isinstance(data, NormalizedCard):
            return data
        if not isinstance(data, dict):
            raise TransformError(f"Expected an object, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            external_id = data.get("api_id")
            raise TransformError(
                f"Invalid card record: {e.error_count()} validation errors",
                external_id=str(external_id) if external_id is not None else None,
            ) from e

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class DeckEntry(BaseModel):
    """A card reference inside a deck list."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api_id: str = Field(..., min_length=1, alias="id")
    name: str = Field(..., min_length=1)
    count: int = 1
    rarity: str | None = None


class DeckRecord(BaseModel):
    """A deck as published in the upstream deck dumps."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    types: list[str] = Field(default_factory=list)
    cards: list[DeckEntry] = Field(default_factory=list)

    @field_validator("types", "cards", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value
