"""Tests for the pure catalog/overlay reconciliation helpers."""

from __future__ import annotations

import pytest

from app.models import Episode, FilterMode, Progress
from app.services.reconciliation import (
    aggregate_progress,
    apply_seen,
    filter_episodes,
    reconcile,
)


def build_catalog(count: int) -> list[Episode]:
    return [
        Episode(id=index, code=f"S01E{index:02d}", title=f"Episode {index}")
        for index in range(1, count + 1)
    ]


def test_reconcile_flags_episodes_present_in_seen_set() -> None:
    catalog = build_catalog(5)
    seen_ids = {"2", "4"}

    reconciled = reconcile(catalog, seen_ids)

    assert [episode.id for episode in reconciled] == [1, 2, 3, 4, 5]
    for episode in reconciled:
        assert episode.seen == (str(episode.id) in seen_ids)


def test_reconcile_does_not_mutate_inputs() -> None:
    catalog = build_catalog(3)
    seen_ids = {"1"}

    reconciled = reconcile(catalog, seen_ids)

    assert reconciled is not catalog
    assert all(episode.seen is False for episode in catalog)
    assert seen_ids == {"1"}
    assert reconciled[0].seen is True


def test_reconcile_clears_stale_flags() -> None:
    """A previously seen episode becomes unseen when the store lost its record."""

    catalog = [Episode(id=1, seen=True), Episode(id=2, seen=True)]

    reconciled = reconcile(catalog, {"2"})

    assert [episode.seen for episode in reconciled] == [False, True]


def test_reconcile_accepts_integer_and_padded_ids() -> None:
    catalog = build_catalog(3)

    reconciled = reconcile(catalog, [3, " 1 ", "not-an-id"])

    assert [episode.seen for episode in reconciled] == [True, False, True]


def test_reconcile_is_repeatable() -> None:
    catalog = build_catalog(4)
    seen_ids = {"1", "3"}

    assert reconcile(catalog, seen_ids) == reconcile(catalog, seen_ids)


def test_filter_seen_only_keeps_relative_order() -> None:
    reconciled = reconcile(build_catalog(6), {"5", "2", "3"})

    visible = filter_episodes(reconciled, FilterMode.SEEN_ONLY)

    assert [episode.id for episode in visible] == [2, 3, 5]
    assert all(episode.seen for episode in visible)


def test_filter_all_returns_everything() -> None:
    reconciled = reconcile(build_catalog(3), {"1"})

    assert filter_episodes(reconciled, FilterMode.ALL) == reconciled


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("all", FilterMode.ALL),
        ("seen", FilterMode.SEEN_ONLY),
        ("SEEN_ONLY", FilterMode.SEEN_ONLY),
        ("vistos", FilterMode.SEEN_ONLY),
        ("Todos", FilterMode.ALL),
        (None, FilterMode.ALL),
    ],
)
def test_filter_mode_parse_accepts_aliases(raw: object, expected: FilterMode) -> None:
    assert FilterMode.parse(raw) is expected


def test_filter_mode_parse_rejects_unknown_values() -> None:
    with pytest.raises(ValueError, match="Unknown filter mode"):
        FilterMode.parse("unwatched")


def test_progress_truncates_percentage() -> None:
    reconciled = reconcile(build_catalog(3), {"1"})

    progress = aggregate_progress(reconciled)

    assert progress == Progress(seen_count=1, total=3, percent=33)


def test_progress_ignores_seen_ids_missing_from_catalog() -> None:
    reconciled = reconcile(build_catalog(4), {"1", "2", "99", "100"})

    progress = aggregate_progress(reconciled)

    assert progress.seen_count == 2
    assert progress.total == 4
    assert progress.percent == 50


def test_progress_of_empty_catalog_is_zero() -> None:
    assert aggregate_progress([]) == Progress(seen_count=0, total=0, percent=0)


def test_progress_is_idempotent() -> None:
    reconciled = reconcile(build_catalog(7), {"1", "2"})

    first = aggregate_progress(reconciled)
    second = aggregate_progress(reconciled)

    assert first == second
    assert first.percent == 28


def test_apply_seen_returns_updated_copy() -> None:
    snapshot = reconcile(build_catalog(3), set())

    updated = apply_seen(snapshot, ["2", 3], True)

    assert [episode.seen for episode in updated] == [False, True, True]
    assert all(episode.seen is False for episode in snapshot)
