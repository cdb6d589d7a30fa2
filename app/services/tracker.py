"""High level coordination of per-user episode views."""

from __future__ import annotations

import logging
from collections import OrderedDict

from ..config import Settings
from ..models import FilterMode, Progress
from .batch import BatchMutationCoordinator
from .catalog import CatalogClient
from .characters import CharacterResolver
from .seen_store import SeenStore
from .view import EpisodeView, LoadResult

logger = logging.getLogger(__name__)


class TrackerService:
    """Hands out one long-lived :class:`EpisodeView` per user."""

    def __init__(
        self,
        settings: Settings,
        catalog_client: CatalogClient,
        seen_store: SeenStore,
        *,
        coordinator: BatchMutationCoordinator | None = None,
        resolver: CharacterResolver | None = None,
    ) -> None:
        self._settings = settings
        self._catalog = catalog_client
        self._store = seen_store
        self._coordinator = coordinator or BatchMutationCoordinator(
            seen_store, concurrency=settings.batch_concurrency
        )
        self._resolver = resolver or CharacterResolver(catalog_client)
        self._views: OrderedDict[str, EpisodeView] = OrderedDict()
        self._max_views = settings.view_cache_size

    def view(self, user_id: str) -> EpisodeView:
        """Return the view for ``user_id``, creating it on first use.

        At most ``VIEW_CACHE_SIZE`` views are kept; the least recently used one
        is dropped and rebuilt from the store on its next request.
        """

        normalized = (user_id or "").strip()
        if not normalized:
            raise ValueError("A user id is required")
        view = self._views.get(normalized)
        if view is not None:
            self._views.move_to_end(normalized)
            return view

        view = EpisodeView(
            normalized,
            self._catalog,
            self._store,
            self._coordinator,
            self._resolver,
        )
        self._views[normalized] = view
        while len(self._views) > self._max_views:
            evicted, _ = self._views.popitem(last=False)
            logger.debug("Evicting idle view for %s", evicted)
        return view

    async def open_view(
        self,
        user_id: str,
        *,
        mode: FilterMode | str | None = None,
        reload: bool = False,
    ) -> EpisodeView:
        """Return a loaded view, reconciling again when asked or never loaded."""

        view = self.view(user_id)
        if reload or not view.loaded:
            await view.load()
        if mode is not None:
            await view.set_filter(mode)
        return view

    async def progress(self, user_id: str) -> tuple[Progress, LoadResult]:
        """Reconcile afresh and return the user's progress through the catalog."""

        view = self.view(user_id)
        result = await view.load()
        return view.progress(), result
