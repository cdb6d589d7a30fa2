"""Utility helpers for the SeenTrack service."""

from __future__ import annotations

from typing import Iterable


def episode_key(value: object) -> str:
    """Return the canonical string form of an episode identifier.

    The catalog hands out integer ids while the seen store keys its records by
    string, so both sides are compared through this helper.
    """

    if isinstance(value, bool):
        raise ValueError(f"Invalid episode id: {value!r}")
    if isinstance(value, int):
        return str(value)
    text = str(value).strip()
    try:
        return str(int(text))
    except ValueError:
        raise ValueError(f"Invalid episode id: {value!r}") from None


def episode_keys(values: Iterable[object]) -> set[str]:
    """Normalise an iterable of ids, dropping entries that are not ids."""

    keys: set[str] = set()
    for value in values:
        try:
            keys.add(episode_key(value))
        except ValueError:
            continue
    return keys


def unique_in_order(values: Iterable[int]) -> list[int]:
    """Deduplicate while keeping the first occurrence of each value."""

    seen: set[int] = set()
    ordered: list[int] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
