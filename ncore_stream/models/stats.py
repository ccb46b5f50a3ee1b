"""
Data model for reporting the state of the torrent store.
"""

from dataclasses import asdict, dataclass


@dataclass
class TorrentStoreStats:
    """A human-readable snapshot of one active torrent."""

    hash: str
    name: str
    progress: str
    size: str
    downloaded: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)
