"""
Data models for search hits, parsed torrent metadata and ranked candidates.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SearchHit(BaseModel):
    """A single row of the tracker's JSON search response."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    torrent_id: str
    release_name: str = ""
    download_url: str
    details_url: str = ""
    category: str = ""
    size: int = 0
    seeders: int = 0
    leechers: int = 0
    imdb_id: str = ""

    @field_validator("torrent_id", mode="before")
    @classmethod
    def coerce_torrent_id(cls, v: Any) -> str:
        return str(v)


class SearchPage(BaseModel):
    """One page of tracker search results."""

    model_config = ConfigDict(extra="ignore")

    results: list[SearchHit] = Field(default_factory=list)
    total_results: int = 0
    onpage: int = 0
    perpage: int = 0

    @property
    def page_count(self) -> int:
        """Number of pages needed to hold every result."""
        if self.perpage <= 0 or self.total_results <= 0:
            return 1
        return -(-self.total_results // self.perpage)


class TorrentFile(BaseModel):
    """A file entry inside a torrent."""

    model_config = ConfigDict(frozen=True)

    path: str
    length: int


class ParsedTorrent(BaseModel):
    """The parts of a .torrent file the addon needs."""

    model_config = ConfigDict(frozen=True)

    info_hash: str
    name: str
    piece_length: int
    files: tuple[TorrentFile, ...]

    @property
    def total_length(self) -> int:
        return sum(f.length for f in self.files)


class TorrentCandidate(BaseModel):
    """A search hit enriched with its parsed torrent metadata."""

    model_config = ConfigDict(frozen=True)

    source_name: str
    source_id: str
    title: str
    category: str = ""
    info_hash: str
    seeders: int = 0
    leechers: int = 0
    size: int = 0
    download_url: str = ""
    files: tuple[TorrentFile, ...] = ()
    media_file_index: int
    is_speculative: bool = False

    @property
    def media_file(self) -> TorrentFile:
        return self.files[self.media_file_index]

    def as_speculative(self) -> "TorrentCandidate":
        """Returns a copy flagged as found through the fallback search."""
        return self.model_copy(update={"is_speculative": True})


@dataclass(frozen=True)
class ByteRange:
    """An inclusive, zero-indexed byte window of a file."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass
class TorrentResource:
    """
    An active torrent registered with the transfer engine. Owned by the
    TorrentStore; callers must not mutate it.
    """

    info_hash: str
    name: str
    files: tuple[TorrentFile, ...]
    piece_length: int
    source_file_path: Path
    download_path: Path
    downloaded_bytes: int = 0
    total_length: int = field(init=False)

    def __post_init__(self):
        self.total_length = sum(f.length for f in self.files)
