"""Per-user persistence of seen-episode records.

Each user owns a collection of records keyed by episode id; the existence of a
record is what marks the episode as seen. Writes use merge semantics so that
repeating an upsert never duplicates a record.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import SeenEpisode
from ..errors import StoreError
from ..utils import episode_key

logger = logging.getLogger(__name__)


class SeenStore(Protocol):
    """Document store holding one seen record per (user, episode)."""

    async def list_seen(self, user_id: str) -> set[str]:
        """Return the ids of every episode the user has marked as seen."""
        ...

    async def upsert(
        self,
        user_id: str,
        episode_id: int | str,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        """Create the record, or merge ``payload`` into the existing one."""
        ...

    async def delete(self, user_id: str, episode_id: int | str) -> None:
        """Remove the record. Deleting a missing record is not an error."""
        ...


class SqlSeenStore:
    """Seen store backed by the ``seen_episodes`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        serialize_writes: bool = False,
    ) -> None:
        self._session_factory = session_factory
        # SQLite cannot upgrade two concurrent read transactions to writers.
        self._write_lock = asyncio.Lock() if serialize_writes else None

    async def list_seen(self, user_id: str) -> set[str]:
        try:
            async with self._session_factory() as session:
                stmt = select(SeenEpisode.episode_id).where(
                    SeenEpisode.user_id == user_id
                )
                result = await session.execute(stmt)
                return {row[0] for row in result.all()}
        except SQLAlchemyError as exc:
            logger.warning("Failed to list seen episodes for %s: %s", user_id, exc)
            raise StoreError(
                f"Could not read seen episodes for user {user_id}", user_id=user_id
            ) from exc

    async def upsert(
        self,
        user_id: str,
        episode_id: int | str,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        key = episode_key(episode_id)
        async with self._writing():
            for attempt in range(2):
                try:
                    await self._merge(user_id, key, payload)
                    return
                except IntegrityError as exc:
                    # A concurrent writer inserted the same record first.
                    if attempt == 0:
                        continue
                    raise self._write_error("save", user_id, key, exc) from exc
                except SQLAlchemyError as exc:
                    raise self._write_error("save", user_id, key, exc) from exc

    async def delete(self, user_id: str, episode_id: int | str) -> None:
        key = episode_key(episode_id)
        async with self._writing():
            try:
                async with self._session_factory() as session:
                    await session.execute(
                        delete(SeenEpisode).where(
                            SeenEpisode.user_id == user_id,
                            SeenEpisode.episode_id == key,
                        )
                    )
                    await session.commit()
            except SQLAlchemyError as exc:
                raise self._write_error("remove", user_id, key, exc) from exc

    async def _merge(
        self, user_id: str, key: str, payload: Mapping[str, Any] | None
    ) -> None:
        now = datetime.utcnow()
        async with self._session_factory() as session:
            record = await session.get(SeenEpisode, (user_id, key))
            if record is None:
                session.add(
                    SeenEpisode(
                        user_id=user_id,
                        episode_id=key,
                        payload=dict(payload or {}),
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                merged = dict(record.payload or {})
                merged.update(payload or {})
                record.payload = merged
                record.updated_at = now
            await session.commit()

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[None]:
        if self._write_lock is None:
            yield
            return
        async with self._write_lock:
            yield

    @staticmethod
    def _write_error(
        action: str, user_id: str, key: str, exc: Exception
    ) -> StoreError:
        logger.warning(
            "Failed to %s seen episode %s for %s: %s", action, key, user_id, exc
        )
        return StoreError(
            f"Could not {action} episode {key} for user {user_id}",
            user_id=user_id,
            episode_id=key,
        )
