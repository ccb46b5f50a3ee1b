"""
Data Models Layer.

This package contains the models that define the core data structures
used throughout the application: configuration, torrents and streams.
"""

from .config import StreamConfig
from .stats import TorrentStoreStats
from .stream import PlayRequest, StreamDescriptor, StreamQuery, StreamType
from .torrent import (
    ByteRange,
    ParsedTorrent,
    SearchHit,
    SearchPage,
    TorrentCandidate,
    TorrentFile,
    TorrentResource,
)

__all__ = [
    "ByteRange",
    "ParsedTorrent",
    "PlayRequest",
    "SearchHit",
    "SearchPage",
    "StreamConfig",
    "StreamDescriptor",
    "StreamQuery",
    "StreamType",
    "TorrentCandidate",
    "TorrentFile",
    "TorrentResource",
    "TorrentStoreStats",
]
