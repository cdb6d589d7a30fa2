"""Utilities for communicating with the remote episode catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import NetworkError
from ..models import Character, Episode

logger = logging.getLogger(__name__)


class CatalogClient:
    """Thin wrapper around the catalog HTTP API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._max_retries = settings.catalog_retry_limit

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (seentrack)",
        }

    async def fetch_episodes(self) -> list[Episode]:
        """Fetch the first page of the episode catalog."""

        data = await self._get_json("episode")
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            logger.warning("Unexpected catalog response structure for episodes")
            raise NetworkError("Unexpected catalog response structure for episodes")

        episodes: list[Episode] = []
        seen_ids: set[int] = set()
        for entry in data["results"]:
            if not isinstance(entry, dict):
                continue
            try:
                episode = Episode.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping invalid catalog episode %s: %s", entry.get("id"), exc)
                continue
            if episode.id in seen_ids:
                logger.warning("Skipping duplicate catalog episode %s", episode.id)
                continue
            seen_ids.add(episode.id)
            episodes.append(episode)
        return episodes

    async def fetch_characters(self, ids: Sequence[int]) -> list[Character]:
        """Fetch several characters with a single batched request."""

        if not ids:
            return []
        joined = ",".join(str(int(character_id)) for character_id in ids)
        data = await self._get_json(f"character/{joined}")
        # A single id yields a bare object instead of a list.
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            logger.warning("Unexpected catalog response structure for characters")
            raise NetworkError("Unexpected catalog response structure for characters")

        characters: list[Character] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            try:
                characters.append(Character.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping invalid character %s: %s", entry.get("id"), exc)
        return characters

    async def _get_json(self, path: str) -> Any:
        attempt = 0
        while True:
            try:
                response = await self._client.get(path, headers=self._headers())
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._backoff(attempt)
                    logger.info(
                        "Transient error talking to the catalog (%s). Retrying %s in %.1fs",
                        exc.__class__.__name__,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning("Failed to fetch catalog %s: %s", path, exc)
                raise NetworkError(f"Catalog request for {path} failed: {exc}") from exc

            if 500 <= response.status_code < 600:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._backoff(attempt)
                    logger.info(
                        "Catalog 5xx for %s. Retrying in %.1fs", path, backoff
                    )
                    await asyncio.sleep(backoff)
                    continue
            break

        if response.status_code >= 400:
            logger.warning(
                "Failed to fetch catalog %s: %s %s",
                path,
                response.status_code,
                response.text,
            )
            raise NetworkError(
                f"Catalog request for {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON catalog response for %s", path)
            raise NetworkError(f"Catalog response for {path} was not JSON") from exc

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(2 ** (attempt - 1), 5) + (0.1 * attempt)
