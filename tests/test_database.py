from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect, text

from app.database import Database


def _initialise_legacy_schema(database_path: str) -> None:
    """Create a legacy seen_episodes table lacking the payload columns."""

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    CREATE TABLE seen_episodes (
                        user_id VARCHAR(128) NOT NULL,
                        episode_id VARCHAR(32) NOT NULL,
                        created_at DATETIME,
                        PRIMARY KEY (user_id, episode_id)
                    )
                    """
                )
            )
            connection.execute(
                text(
                    "INSERT INTO seen_episodes (user_id, episode_id) VALUES ('rick', '1')"
                )
            )
    finally:
        engine.dispose()


def test_create_all_adds_payload_columns(tmp_path) -> None:
    """Schema migrations should backfill the payload and updated_at columns."""

    database_path = tmp_path / "legacy.db"
    _initialise_legacy_schema(str(database_path))

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {column["name"] for column in inspector.get_columns("seen_episodes")}
        with inspector_engine.connect() as connection:
            payload = connection.execute(
                text("SELECT payload FROM seen_episodes WHERE episode_id = '1'")
            ).scalar_one()
    finally:
        inspector_engine.dispose()

    assert {"payload", "updated_at"} <= columns
    assert payload == "{}"


def test_create_all_on_fresh_database(tmp_path) -> None:
    database_path = tmp_path / "fresh.db"

    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{database_path}")
        await database.create_all()
        await database.create_all()
        await database.dispose()

    asyncio.run(runner())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        tables = inspect(inspector_engine).get_table_names()
    finally:
        inspector_engine.dispose()

    assert "seen_episodes" in tables
