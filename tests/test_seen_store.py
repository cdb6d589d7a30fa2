"""Tests for the SQL-backed seen-episode store."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from app.database import Database
from app.db_models import SeenEpisode
from app.errors import StoreError
from app.services.seen_store import SqlSeenStore


async def _open_store(tmp_path, name: str) -> tuple[Database, SqlSeenStore]:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / name}")
    await database.create_all()
    return database, SqlSeenStore(database.session_factory, serialize_writes=True)


async def _count_records(database: Database, user_id: str) -> int:
    async with database.session() as session:
        result = await session.execute(
            select(func.count()).select_from(SeenEpisode).where(SeenEpisode.user_id == user_id)
        )
        return int(result.scalar_one())


async def _stored_payload(database: Database, user_id: str, episode_id: str):
    async with database.session() as session:
        record = await session.get(SeenEpisode, (user_id, episode_id))
        return None if record is None else record.payload


def test_upsert_then_list_returns_string_ids(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _open_store(tmp_path, "list.db")

        await store.upsert("rick", 1, {"name": "Pilot"})
        await store.upsert("rick", "24", {"name": "Get Schwifty"})
        await store.upsert("morty", 3, {})

        assert await store.list_seen("rick") == {"1", "24"}
        assert await store.list_seen("morty") == {"3"}
        assert await store.list_seen("summer") == set()

        await database.dispose()

    asyncio.run(runner())


def test_repeated_upsert_is_idempotent(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _open_store(tmp_path, "idempotent.db")

        payload = {"id": 5, "name": "Meeseeks and Destroy", "viewed": True}
        await store.upsert("rick", 5, payload)
        await store.upsert("rick", 5, payload)

        assert await _count_records(database, "rick") == 1
        assert await _stored_payload(database, "rick", "5") == payload

        await database.dispose()

    asyncio.run(runner())


def test_upsert_merges_payload_fields(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _open_store(tmp_path, "merge.db")

        await store.upsert("rick", 5, {"name": "Meeseeks and Destroy", "note": "keep"})
        await store.upsert("rick", 5, {"name": "Meeseeks & Destroy"})

        assert await _stored_payload(database, "rick", "5") == {
            "name": "Meeseeks & Destroy",
            "note": "keep",
        }

        await database.dispose()

    asyncio.run(runner())


def test_concurrent_upserts_of_same_episode_leave_one_record(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _open_store(tmp_path, "concurrent.db")

        await asyncio.gather(*(store.upsert("rick", 9, {"viewed": True}) for _ in range(5)))

        assert await _count_records(database, "rick") == 1

        await database.dispose()

    asyncio.run(runner())


def test_delete_removes_record_and_tolerates_missing(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _open_store(tmp_path, "delete.db")

        await store.upsert("rick", 1, {})
        await store.upsert("rick", 2, {})
        await store.delete("rick", 1)
        await store.delete("rick", 1)
        await store.delete("rick", 404)

        assert await store.list_seen("rick") == {"2"}
        assert await _stored_payload(database, "rick", "1") is None

        await database.dispose()

    asyncio.run(runner())


def test_store_errors_are_wrapped(tmp_path) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing-tables.db'}")
        store = SqlSeenStore(database.session_factory)

        with pytest.raises(StoreError) as excinfo:
            await store.list_seen("rick")
        assert excinfo.value.user_id == "rick"

        with pytest.raises(StoreError) as excinfo:
            await store.upsert("rick", 1, {})
        assert excinfo.value.episode_id == "1"

        await database.dispose()

    asyncio.run(runner())
