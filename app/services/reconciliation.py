"""Pure merge of the remote catalog with a user's seen overlay.

Nothing in this module performs I/O or keeps state between calls: every
function derives a fresh value from its arguments, so the results can be
recomputed at any time from the last reconciled snapshot.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from ..models import Episode, FilterMode, Progress
from ..utils import episode_key, episode_keys


def reconcile(catalog: Sequence[Episode], seen_ids: Iterable[object]) -> list[Episode]:
    """Annotate each catalog episode with whether the user has seen it.

    Catalog order is kept as the display order and the input episodes are left
    untouched; changed entries are returned as copies.
    """

    seen = episode_keys(seen_ids)
    reconciled: list[Episode] = []
    for episode in catalog:
        flag = episode.key in seen
        if episode.seen == flag:
            reconciled.append(episode)
        else:
            reconciled.append(episode.model_copy(update={"seen": flag}))
    return reconciled


def filter_episodes(reconciled: Sequence[Episode], mode: FilterMode) -> list[Episode]:
    """Return the episodes visible under ``mode``, in snapshot order."""

    mode = FilterMode.parse(mode)
    if mode is FilterMode.SEEN_ONLY:
        return [episode for episode in reconciled if episode.seen]
    return list(reconciled)


def aggregate_progress(reconciled: Sequence[Episode]) -> Progress:
    """Summarise how much of the catalog has been seen.

    Only episodes present in the snapshot count towards ``seen_count``; seen
    records for episodes the catalog no longer lists are ignored. The
    percentage truncates rather than rounds.
    """

    total = len(reconciled)
    seen_count = sum(1 for episode in reconciled if episode.seen)
    percent = 0 if total == 0 else (seen_count * 100) // total
    return Progress(seen_count=seen_count, total=total, percent=percent)


def apply_seen(
    snapshot: Sequence[Episode], episode_ids: Iterable[object], seen: bool
) -> list[Episode]:
    """Return a copy of ``snapshot`` with the given episodes flagged."""

    targets = {episode_key(value) for value in episode_ids}
    updated: list[Episode] = []
    for episode in snapshot:
        if episode.key in targets and episode.seen != seen:
            updated.append(episode.model_copy(update={"seen": seen}))
        else:
            updated.append(episode)
    return updated
