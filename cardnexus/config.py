from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardNexus"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardnexus"

    pokemon_tcg_api_url: str = "https://api.pokemontcg.io/v2"
    pokemon_tcg_api_key: str = ""

    pokemon_tcg_github_url: str = (
        "https://raw.githubusercontent.com/PokemonTCG/pokemon-tcg-data/master"
    )
    github_contents_api_url: str = (
        "https://api.github.com/repos/PokemonTCG/pokemon-tcg-data/contents"
    )

    ygoprodeck_api_url: str = "https://db.ygoprodeck.com/api/v7"

    # Chunk and snapshot files live here
    data_dir: Path = Path("data/pokemon-cards")

    import_batch_size: int = 50


settings = Settings()


# =============================================================================
# FETCH TUNING
# =============================================================================

# Documented upper bound for pageSize on the Pokemon TCG API
MAX_PAGE_SIZE = 250

BackoffMode = Literal["linear", "exponential"]


@dataclass(frozen=True)
class FetchConfig:
    """
    Tuning for one fetch run.

    Built once and handed to every fetch component. Delays are seconds.

    Attributes:
        base_url: Upstream API root (no trailing slash)
        api_key: Optional key sent as X-Api-Key
        page_size: Records requested per page
        request_delay: Pause between successful page fetches
        timeout: Per-request timeout
        max_attempts: Total attempts per page, first try included
        rate_limit_cooldown: Fixed wait after an HTTP 429
        backoff_step: Base wait after a timeout or server error
        backoff_mode: How the wait grows with repeated transient failures
        save_interval: Pages fetched between chunk checkpoints
        skip_failed_pages: Continue past a page that failed all attempts
        user_agent: Sent with every request
    """

    base_url: str
    api_key: str | None = None
    page_size: int = 25
    request_delay: float = 5.0
    timeout: float = 45.0
    max_attempts: int = 5
    rate_limit_cooldown: float = 30.0
    backoff_step: float = 3.0
    backoff_mode: BackoffMode = "linear"
    save_interval: int = 5
    skip_failed_pages: bool = False
    user_agent: str = "CardNexus Fetcher/2.0"

    def __post_init__(self) -> None:
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValueError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size}"
            )
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.save_interval < 1:
            raise ValueError("save_interval must be at least 1")

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def for_api_key(cls, base_url: str, api_key: str | None) -> "FetchConfig":
        """
        Pick the tuning profile for the presence of an API key.

        A key raises the upstream rate ceiling, so pages get bigger and
        pauses shorter. Without one the safe profile is used.
        """
        base_url = base_url.rstrip("/")
        if api_key:
            return cls(
                base_url=base_url,
                api_key=api_key,
                page_size=100,
                request_delay=1.0,
                timeout=30.0,
                max_attempts=3,
                rate_limit_cooldown=10.0,
            )
        return cls(base_url=base_url)

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "FetchConfig":
        """Build the Pokemon TCG API profile from application settings."""
        app_settings = app_settings or settings
        return cls.for_api_key(
            app_settings.pokemon_tcg_api_url,
            app_settings.pokemon_tcg_api_key or None,
        )

    def with_overrides(self, **changes: object) -> "FetchConfig":
        """Copy with some fields replaced (validation runs again)."""
        return replace(self, **changes)  # type: ignore[arg-type]
