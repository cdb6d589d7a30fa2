"""Resolve an episode's character references into display records."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from ..errors import MalformedReferenceError
from ..models import Character
from ..utils import unique_in_order
from .catalog import CatalogClient

logger = logging.getLogger(__name__)


def parse_character_id(reference: str) -> int:
    """Return the numeric id that terminates a character locator."""

    text = str(reference or "").strip().rstrip("/")
    segment = text.rsplit("/", 1)[-1]
    if not (segment.isascii() and segment.isdigit()):
        raise MalformedReferenceError(str(reference))
    return int(segment)


def character_ids(references: Iterable[str]) -> list[int]:
    """Parse and deduplicate references, skipping the malformed ones."""

    parsed: list[int] = []
    for reference in references:
        try:
            parsed.append(parse_character_id(reference))
        except MalformedReferenceError as exc:
            logger.warning("Skipping character reference: %s", exc)
    return unique_in_order(parsed)


class CharacterResolver:
    """Batch character lookups so an episode costs a single catalog request."""

    def __init__(self, catalog: CatalogClient) -> None:
        self._catalog = catalog
        self._inflight: dict[tuple[int, ...], asyncio.Task[list[Character]]] = {}

    async def resolve(self, references: Sequence[str]) -> list[Character]:
        """Return the characters behind ``references`` in reference order."""

        ids = character_ids(references)
        if not ids:
            return []

        key = tuple(sorted(ids))
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._catalog.fetch_characters(ids))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            logger.debug("Joining in-flight character lookup for %s", key)

        characters = await asyncio.shield(task)
        position = {character_id: index for index, character_id in enumerate(ids)}
        ordered = [
            character for character in characters if character.id in position
        ]
        ordered.sort(key=lambda character: position[character.id])
        return ordered
