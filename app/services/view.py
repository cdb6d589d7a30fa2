"""Per-user view context owning the reconciled snapshot and the selection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from ..errors import EpisodeNotFoundError, NetworkError, StoreError
from ..models import Episode, EpisodeDetail, FilterMode, Progress
from ..utils import episode_key, episode_keys
from .batch import BatchMutationCoordinator, BatchResult
from .catalog import CatalogClient
from .characters import CharacterResolver
from .reconciliation import aggregate_progress, apply_seen, filter_episodes, reconcile
from .seen_store import SeenStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LoadResult:
    """Outcome of one reconciliation cycle."""

    generation: int
    applied: bool = False
    episode_count: int = 0
    seen_failed: bool = False
    error: NetworkError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EpisodeView:
    """Snapshot, filter and selection for a single user.

    Snapshot and selection are only changed through the methods below, and
    every change happens while holding the view lock. Remote fetches run
    outside the lock so a newer cycle can start while an older one is still
    waiting on the network; whichever cycle was issued last is the one that
    gets applied.
    """

    def __init__(
        self,
        user_id: str,
        catalog: CatalogClient,
        store: SeenStore,
        coordinator: BatchMutationCoordinator,
        resolver: CharacterResolver | None = None,
    ) -> None:
        self.user_id = user_id
        self._catalog = catalog
        self._store = store
        self._coordinator = coordinator
        self._resolver = resolver or CharacterResolver(catalog)
        self._lock = asyncio.Lock()
        self._snapshot: list[Episode] = []
        self._filter = FilterMode.ALL
        self._selection: set[str] = set()
        self._generation = 0
        self.loaded = False
        self.last_error: NetworkError | None = None

    @property
    def snapshot(self) -> tuple[Episode, ...]:
        return tuple(self._snapshot)

    @property
    def filter_mode(self) -> FilterMode:
        return self._filter

    @property
    def selection(self) -> frozenset[str]:
        return frozenset(self._selection)

    @property
    def selection_mode(self) -> bool:
        """Whether the user is currently picking episodes for a batch."""

        return bool(self._selection)

    async def load(self) -> LoadResult:
        """Run one reconciliation cycle against the store and the catalog."""

        self._generation += 1
        generation = self._generation
        logger.info("Starting reconciliation cycle %s for %s", generation, self.user_id)

        (seen_ids, seen_failed), catalog = await asyncio.gather(
            self._fetch_seen_ids(),
            self._fetch_catalog(),
        )
        result = LoadResult(generation=generation, seen_failed=seen_failed)

        async with self._lock:
            if generation != self._generation:
                logger.info(
                    "Discarding superseded cycle %s for %s (latest is %s)",
                    generation,
                    self.user_id,
                    self._generation,
                )
                return result

            if isinstance(catalog, NetworkError):
                self.last_error = catalog
                result.error = catalog
                result.episode_count = len(self._snapshot)
                return result

            self._snapshot = reconcile(catalog, seen_ids)
            self._prune_selection()
            self.loaded = True
            self.last_error = None

        result.applied = True
        result.episode_count = len(catalog)
        return result

    def visible(self) -> list[Episode]:
        return filter_episodes(self._snapshot, self._filter)

    def progress(self) -> Progress:
        return aggregate_progress(self._snapshot)

    def get_episode(self, episode_id: object) -> Episode:
        key = episode_key(episode_id)
        for episode in self._snapshot:
            if episode.key == key:
                return episode
        raise EpisodeNotFoundError(episode_id)

    async def set_filter(self, mode: FilterMode | str) -> list[Episode]:
        """Switch the projection; selected episodes that disappear are dropped."""

        async with self._lock:
            self._filter = FilterMode.parse(mode)
            self._prune_selection()
            return self.visible()

    async def select(self, episode_ids: Iterable[object]) -> frozenset[str]:
        async with self._lock:
            visible = {episode.key for episode in self.visible()}
            self._selection.update(episode_keys(episode_ids) & visible)
            return self.selection

    async def deselect(self, episode_ids: Iterable[object]) -> frozenset[str]:
        async with self._lock:
            self._selection.difference_update(episode_keys(episode_ids))
            return self.selection

    async def toggle(self, episode_id: object) -> frozenset[str]:
        key = episode_key(episode_id)
        if key in self._selection:
            return await self.deselect([key])
        return await self.select([key])

    async def clear_selection(self) -> None:
        async with self._lock:
            self._selection.clear()

    async def commit_selection(self, mark_seen: bool = True) -> BatchResult:
        """Persist the selection and reload once every write has resolved.

        The local snapshot is updated before the writes go out. Failed writes are
        not rolled back locally; the reload that follows the batch replaces the
        optimistic flags with whatever the store actually holds.
        """

        reload_requested = False

        async def _on_complete(result: BatchResult) -> None:
            nonlocal reload_requested
            self._selection.clear()
            reload_requested = True

        async with self._lock:
            selected = [
                episode for episode in self._snapshot if episode.key in self._selection
            ]
            if not selected:
                return BatchResult(mark_seen=mark_seen)
            self._snapshot = apply_seen(
                self._snapshot, (episode.key for episode in selected), mark_seen
            )
            result = await self._coordinator.commit(
                self.user_id, selected, mark_seen, on_complete=_on_complete
            )

        if reload_requested:
            await self.load()
        return result

    async def set_seen(self, episode_id: object, seen: bool) -> Episode:
        """Mark a single episode as seen or unseen in the store."""

        episode = self.get_episode(episode_id)
        if seen:
            await self._store.upsert(self.user_id, episode.key, episode.to_seen_payload())
        else:
            await self._store.delete(self.user_id, episode.key)

        async with self._lock:
            # Cycles already in flight read the store before this write.
            self._generation += 1
            self._snapshot = apply_seen(self._snapshot, [episode.key], seen)
            self._prune_selection()
        return episode.model_copy(update={"seen": seen})

    async def detail(self, episode_id: object) -> EpisodeDetail:
        """Return the episode together with its resolved characters."""

        episode = self.get_episode(episode_id)
        try:
            characters = await self._resolver.resolve(episode.character_refs)
        except NetworkError as exc:
            logger.warning(
                "Character lookup failed for episode %s: %s", episode.id, exc
            )
            return EpisodeDetail(episode=episode, characters_error=str(exc))
        return EpisodeDetail(episode=episode, characters=characters)

    def to_payload(self) -> dict[str, Any]:
        visible = self.visible()
        return {
            "userId": self.user_id,
            "filter": self._filter.value,
            "episodes": [episode.to_payload() for episode in visible],
            "selection": sorted(self._selection, key=int),
            "selecting": self.selection_mode,
            "progress": self.progress().to_payload(),
            "error": str(self.last_error) if self.last_error else None,
        }

    async def _fetch_seen_ids(self) -> tuple[set[str], bool]:
        try:
            return await self._store.list_seen(self.user_id), False
        except StoreError as exc:
            logger.warning(
                "Seen episodes unavailable for %s, continuing without them: %s",
                self.user_id,
                exc,
            )
            return set(), True

    async def _fetch_catalog(self) -> list[Episode] | NetworkError:
        try:
            return await self._catalog.fetch_episodes()
        except NetworkError as exc:
            logger.warning("Catalog fetch failed for %s: %s", self.user_id, exc)
            return exc

    def _prune_selection(self) -> None:
        visible = {episode.key for episode in self.visible()}
        dropped = self._selection - visible
        if dropped:
            logger.debug("Dropping %s hidden episode(s) from selection", len(dropped))
            self._selection &= visible
