"""Pydantic models describing catalog payloads and derived views."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import episode_key


class FilterMode(str, Enum):
    """Projection applied to a reconciled snapshot."""

    ALL = "all"
    SEEN_ONLY = "seen"

    @classmethod
    def parse(cls, value: object) -> "FilterMode":
        if isinstance(value, FilterMode):
            return value
        normalized = str(value or "").strip().lower().replace("-", "_")
        aliases = {
            "": cls.ALL,
            "all": cls.ALL,
            "todos": cls.ALL,
            "seen": cls.SEEN_ONLY,
            "seen_only": cls.SEEN_ONLY,
            "vistos": cls.SEEN_ONLY,
        }
        try:
            return aliases[normalized]
        except KeyError:
            raise ValueError(f"Unknown filter mode: {value!r}") from None


class Episode(BaseModel):
    """Single catalog episode annotated with the user's seen flag."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    code: str = Field(
        default="",
        validation_alias=AliasChoices("code", "episode"),
    )
    title: str = Field(
        default="",
        validation_alias=AliasChoices("title", "name"),
    )
    air_date: str = Field(
        default="",
        validation_alias=AliasChoices("air_date", "airDate"),
    )
    character_refs: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("character_refs", "characterRefs", "characters"),
    )
    seen: bool = Field(
        default=False,
        validation_alias=AliasChoices("seen", "viewed"),
    )

    @field_validator("character_refs", mode="before")
    @classmethod
    def _coerce_refs(cls, value: object) -> object:
        if value is None:
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(str(entry) for entry in value if entry)
        return value

    @property
    def key(self) -> str:
        """Identifier used by the seen store."""

        return episode_key(self.id)

    def to_seen_payload(self) -> dict[str, Any]:
        """Return the snapshot persisted alongside a seen record."""

        return {
            "id": self.id,
            "name": self.title,
            "episode": self.code,
            "air_date": self.air_date,
            "characters": list(self.character_refs),
            "viewed": True,
        }

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON shape served by the API."""

        return {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "airDate": self.air_date,
            "characterRefs": list(self.character_refs),
            "seen": self.seen,
        }


class Character(BaseModel):
    """Display record for a character appearing in an episode."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str = ""
    image_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("image_ref", "imageRef", "image"),
    )
    status: str | None = None
    species: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.image_ref:
            payload["imageRef"] = self.image_ref
        if self.status:
            payload["status"] = self.status
        if self.species:
            payload["species"] = self.species
        return payload


class Progress(BaseModel):
    """Aggregate viewing progress for a reconciled snapshot."""

    model_config = ConfigDict(frozen=True)

    seen_count: int = 0
    total: int = 0
    percent: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "seenCount": self.seen_count,
            "total": self.total,
            "percent": self.percent,
        }


class EpisodeDetail(BaseModel):
    """Episode together with its resolved characters."""

    episode: Episode
    characters: list[Character] = Field(default_factory=list)
    characters_error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = {
            **self.episode.to_payload(),
            "characters": [character.to_payload() for character in self.characters],
        }
        if self.characters_error:
            payload["charactersError"] = self.characters_error
        return payload
