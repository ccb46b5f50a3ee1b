"""
Wires the addon's components together from a validated configuration.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ncore_stream.api.cinemeta import CinemetaClient
from ncore_stream.api.client import NcoreClient
from ncore_stream.core.range_negotiator import RangeNegotiator
from ncore_stream.core.source_aggregator import SourceAggregator
from ncore_stream.core.stream_service import StreamService
from ncore_stream.core.torrent_service import TorrentService
from ncore_stream.core.torrent_store import TorrentStore
from ncore_stream.models.config import StreamConfig
from ncore_stream.storage.cache import QueryCache, normalize_query_key
from ncore_stream.storage.state import PersistedState
from ncore_stream.transfer.engine import TransferEngine
from ncore_stream.utils.batch_fetcher import BatchFetcher
from ncore_stream.utils.structured_logger import (
    StructuredLogger,
    create_structured_loggers,
)

log = logging.getLogger(__name__)


@dataclass
class AddonServices:
    """Everything the HTTP handlers and CLI commands operate on."""

    config: StreamConfig
    aggregator: SourceAggregator
    torrent_service: TorrentService
    store: TorrentStore
    stream_service: StreamService
    negotiator: RangeNegotiator
    cache: Optional[QueryCache] = None
    api_client: Optional[NcoreClient] = None
    metadata_client: Optional[CinemetaClient] = None
    event_logger: Optional[StructuredLogger] = None
    closed: bool = field(default=False, init=False)

    async def aclose(self) -> None:
        """Closes outbound sessions and the event log."""
        if self.closed:
            return
        self.closed = True
        if self.api_client:
            await self.api_client.close()
        if self.metadata_client:
            await self.metadata_client.close()
        if self.event_logger:
            self.event_logger.close()


def build_negotiator(config: StreamConfig) -> RangeNegotiator:
    return RangeNegotiator(
        initial_window=config.initial_window_bytes,
        resume_window=config.resume_window_bytes,
        max_chunk=config.max_chunk_bytes or None,
    )


def build_services(
    config: StreamConfig, engine: Optional[TransferEngine] = None
) -> AddonServices:
    """Constructs the production component graph for `config`."""
    log_dir = Path(config.log_dir) if config.log_dir else None
    event_logger, store_events, source_events = create_structured_loggers(log_dir)

    api_client = NcoreClient(
        config.ncore_url,
        config.ncore_username,
        config.ncore_password,
        timeout_seconds=config.request_timeout_seconds,
        events=source_events,
    )
    metadata_client = CinemetaClient(
        config.cinemeta_url, timeout_seconds=config.request_timeout_seconds
    )
    torrents_dir = Path(config.torrents_dir)
    torrent_service = TorrentService(api_client, torrents_dir)
    cache = QueryCache(
        ttl_seconds=config.search_cache_ttl_seconds,
        max_entries=config.search_cache_max_entries,
        key_fn=normalize_query_key,
    )
    aggregator = SourceAggregator(
        api_client,
        torrent_service,
        metadata_client,
        cache,
        BatchFetcher(config.batch_size, config.batch_delay_seconds),
        events=source_events,
    )
    if engine is None:
        from ncore_stream.transfer.libtorrent_engine import LibtorrentEngine

        engine = LibtorrentEngine()
    store = TorrentStore(
        engine,
        PersistedState(Path(config.state_file)),
        torrents_dir=torrents_dir,
        downloads_dir=Path(config.downloads_dir),
        events=store_events,
    )
    return AddonServices(
        config=config,
        aggregator=aggregator,
        torrent_service=torrent_service,
        store=store,
        stream_service=StreamService(config.public_url),
        negotiator=build_negotiator(config),
        cache=cache,
        api_client=api_client,
        metadata_client=metadata_client,
        event_logger=event_logger,
    )
