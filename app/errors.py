"""Exception taxonomy for the SeenTrack service."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all SeenTrack errors."""


class NetworkError(TrackerError):
    """The remote catalog could not be reached or returned an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StoreError(TrackerError):
    """A read or write against the seen-episode store failed."""

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        episode_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.episode_id = episode_id


class MalformedReferenceError(TrackerError, ValueError):
    """A character reference does not end in a numeric identifier."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Character reference {reference!r} has no numeric id")
        self.reference = reference


class EpisodeNotFoundError(TrackerError, KeyError):
    """The requested episode is not part of the current catalog snapshot."""

    def __init__(self, episode_id: object) -> None:
        super().__init__(f"Episode {episode_id} not found")
        self.episode_id = episode_id

    def __str__(self) -> str:
        return str(self.args[0])
