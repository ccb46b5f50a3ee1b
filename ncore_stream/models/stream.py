"""
Request and response models for the stream endpoints.
"""

import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

_IMDB_ID_REGEX = re.compile(r"^tt\d{1,10}$")
_INFO_HASH_REGEX = re.compile(r"^[0-9a-fA-F]{40}$")


class StreamType(str, Enum):
    MOVIE = "movie"
    SERIES = "series"


class StreamQuery(BaseModel):
    """Validated parameters of a stream listing request."""

    type: StreamType
    imdb_id: str
    season: int | None = Field(None, ge=0)
    episode: int | None = Field(None, ge=0)

    @classmethod
    def from_path(
        cls,
        media_type: str,
        raw_id: str,
        season: str | None = None,
        episode: str | None = None,
    ) -> "StreamQuery":
        """
        Builds a query from the route parameters. Accepts Stremio-style ids
        such as 'tt0000001:1:2.json' as well as explicit season/episode values.
        """
        raw_id = raw_id.removesuffix(".json")
        parts = raw_id.split(":")
        imdb_id = parts[0]
        if len(parts) == 3:
            season = season or parts[1]
            episode = episode or parts[2]
        elif len(parts) != 1:
            raise ValueError(f"Unrecognized id format: {raw_id}")
        return cls(type=media_type, imdb_id=imdb_id, season=season, episode=episode)

    @field_validator("imdb_id")
    @classmethod
    def validate_imdb_id(cls, v: str) -> str:
        if not _IMDB_ID_REGEX.match(v):
            raise ValueError(f"Invalid IMDb id: {v}")
        return v

    @model_validator(mode="after")
    def validate_episode_fields(self) -> "StreamQuery":
        """Season and episode go together and only apply to series."""
        if (self.season is None) != (self.episode is None):
            raise ValueError("Season and episode must be given together.")
        if self.type is StreamType.MOVIE and self.season is not None:
            raise ValueError("Movies cannot have a season or episode.")
        return self


class PlayRequest(BaseModel):
    """Validated parameters of a play request."""

    source_name: str
    source_id: str = Field(..., pattern=r"^\d+$")
    info_hash: str
    file_index: int = Field(..., ge=0)

    @field_validator("info_hash")
    @classmethod
    def validate_info_hash(cls, v: str) -> str:
        if not _INFO_HASH_REGEX.match(v):
            raise ValueError(f"Invalid info hash: {v}")
        return v.lower()


class BehaviorHints(BaseModel):
    bingeGroup: str
    notWebReady: bool = True


class StreamDescriptor(BaseModel):
    """A caller-facing stream entry."""

    name: str
    title: str
    url: str
    behaviorHints: BehaviorHints
    recommended: bool = False
