"""Fan-out of seen/unseen writes for a multi-episode selection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from ..models import Episode
from .seen_store import SeenStore

logger = logging.getLogger(__name__)

CompletionCallback = Callable[["BatchResult"], Awaitable[None]]


@dataclass(slots=True)
class BatchResult:
    """Per-episode outcome of a batch commit."""

    mark_seen: bool
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_payload(self) -> dict[str, Any]:
        return {
            "markSeen": self.mark_seen,
            "total": self.total,
            "succeeded": sorted(self.succeeded, key=int),
            "failed": dict(sorted(self.failed.items(), key=lambda item: int(item[0]))),
            "ok": self.ok,
        }


class BatchTracker:
    """Counts write resolutions until every issued write has reported back.

    Each expected id may resolve once; repeated or unknown resolutions are
    ignored so a duplicated completion signal cannot finish the batch early.
    """

    def __init__(self, expected: Iterable[str], *, mark_seen: bool) -> None:
        self._expected = frozenset(expected)
        self._resolved: dict[str, str | None] = {}
        self._done = asyncio.Event()
        self.result = BatchResult(mark_seen=mark_seen)
        if not self._expected:
            self._done.set()

    @property
    def expected(self) -> int:
        return len(self._expected)

    @property
    def resolved(self) -> int:
        return len(self._resolved)

    @property
    def complete(self) -> bool:
        return self._done.is_set()

    def resolve(self, key: str, error: BaseException | None = None) -> bool:
        """Record the outcome for ``key``; return ``False`` if it was ignored."""

        if key not in self._expected:
            logger.warning("Ignoring completion for unexpected episode %s", key)
            return False
        if key in self._resolved:
            logger.warning("Ignoring duplicate completion for episode %s", key)
            return False

        message = None if error is None else (str(error) or error.__class__.__name__)
        self._resolved[key] = message
        if message is None:
            self.result.succeeded.append(key)
        else:
            self.result.failed[key] = message

        if len(self._resolved) == len(self._expected):
            self._done.set()
        return True

    async def wait(self) -> BatchResult:
        await self._done.wait()
        return self.result


class BatchMutationCoordinator:
    """Apply one independent store write per selected episode."""

    def __init__(self, store: SeenStore, *, concurrency: int = 8) -> None:
        self._store = store
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    async def commit(
        self,
        user_id: str,
        selection: Iterable[Episode],
        mark_seen: bool,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> BatchResult:
        """Write every selected episode and wait for all writes to resolve.

        Writes are issued concurrently and may finish in any order. Failures are
        recorded per episode and never cancel the remaining writes; there is no
        rollback of the ones that succeeded. ``on_complete`` runs exactly once,
        after the last write has resolved.
        """

        episodes: dict[str, Episode] = {}
        for episode in selection:
            episodes.setdefault(episode.key, episode)

        tracker = BatchTracker(episodes.keys(), mark_seen=mark_seen)
        logger.info(
            "Committing %s episode(s) as %s for %s",
            tracker.expected,
            "seen" if mark_seen else "unseen",
            user_id,
        )

        async def _write(key: str, episode: Episode) -> None:
            try:
                async with self._semaphore:
                    if mark_seen:
                        await self._store.upsert(
                            user_id, key, episode.to_seen_payload()
                        )
                    else:
                        await self._store.delete(user_id, key)
            except Exception as exc:
                logger.warning("Write for episode %s failed: %s", key, exc)
                tracker.resolve(key, exc)
            else:
                tracker.resolve(key)

        await asyncio.gather(*(_write(key, episode) for key, episode in episodes.items()))
        result = await tracker.wait()
        if result.failed:
            logger.warning(
                "Batch for %s finished with %s failure(s) out of %s",
                user_id,
                len(result.failed),
                result.total,
            )
        if on_complete is not None:
            await on_complete(result)
        return result
