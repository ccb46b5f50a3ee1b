from .range_negotiator import RangeNegotiator
from .source_aggregator import SourceAggregator
from .stream_service import StreamService
from .torrent_service import TorrentService
from .torrent_store import TorrentStore

__all__ = [
    "RangeNegotiator",
    "SourceAggregator",
    "StreamService",
    "TorrentService",
    "TorrentStore",
]
