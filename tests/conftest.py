from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardnexus.config import FetchConfig
from cardnexus.models.db import Base


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted explicitly (the recipe from the SQLAlchemy SQLite docs).
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch_config() -> FetchConfig:
    """Fast config: small pages, no delays."""
    return FetchConfig(
        base_url="https://api.test/v2",
        page_size=10,
        request_delay=0.0,
        timeout=5.0,
        max_attempts=3,
        rate_limit_cooldown=0.0,
        backoff_step=0.0,
        save_interval=2,
    )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "pokemon-cards"
    path.mkdir()
    return path


def make_raw_card(index: int, set_id: str = "sv1", **overrides: Any) -> dict[str, Any]:
    """A Pokemon TCG API card record."""
    card = {
        "id": f"{set_id}-{index}",
        "name": f"Test Pokemon {index}",
        "supertype": "Pokémon",
        "subtypes": ["Basic"],
        "hp": "70",
        "types": ["Fire"],
        "regulationMark": "G",
        "number": str(index),
        "rarity": "Common",
        "set": {"id": set_id, "name": "Scarlet & Violet", "releaseDate": "2023/03/31"},
        "attacks": [
            {"name": "Ember", "cost": ["Fire"], "damage": "30", "text": "Discard an Energy."}
        ],
        "images": {"small": "https://img.test/s.png", "large": "https://img.test/l.png"},
    }
    card.update(overrides)
    return card


@pytest.fixture
def raw_card_factory():
    return make_raw_card
