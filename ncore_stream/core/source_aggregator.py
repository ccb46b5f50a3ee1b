"""
Finds playable torrents for a title on the tracker.

A search by IMDb id runs first; when none of its hits carries a playable file
for the requested episode, the title's display name is looked up and a
name-based search runs instead, with every result flagged as speculative.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ncore_stream.api.cinemeta import CinemetaClient
from ncore_stream.api.client import NcoreClient
from ncore_stream.exceptions import (
    AuthenticationError,
    NcoreStreamError,
    NotFoundError,
    SourceUnavailableError,
)
from ncore_stream.models.stream import StreamType
from ncore_stream.models.torrent import (
    ParsedTorrent,
    SearchHit,
    SearchPage,
    TorrentCandidate,
)
from ncore_stream.storage.cache import QueryCache
from ncore_stream.utils.batch_fetcher import BatchFetcher, gather_fail_fast
from ncore_stream.utils.media import select_media_file_index
from ncore_stream.utils.structured_logger import SourceEventLogger
from ncore_stream.web.extractors import DetailsPageExtractor, ObligationPageExtractor

from .torrent_service import TorrentService

log = logging.getLogger(__name__)

SEARCH_BY_IMDB = "imdb"
SEARCH_BY_NAME = "name"
ORDER_BY_SEEDERS = "seeders"

MOVIE_CATEGORY_FILTERS = "xvid_hun,xvid,dvd_hun,dvd,dvd9_hun,dvd9,hd_hun,hd"
SERIES_CATEGORY_FILTERS = "xvidser_hun,xvidser,dvdser_hun,dvdser,hdser_hun,hdser"


@dataclass(frozen=True)
class EnrichedHit:
    """A search hit together with the metadata of its torrent file."""

    hit: SearchHit
    torrent: ParsedTorrent


class SourceAggregator:
    """Searches the tracker and turns its hits into torrent candidates."""

    source_name = "ncore"

    def __init__(
        self,
        api_client: NcoreClient,
        torrent_service: TorrentService,
        metadata_client: CinemetaClient,
        cache: QueryCache[dict[str, str], tuple[EnrichedHit, ...]],
        batch_fetcher: BatchFetcher,
        events: Optional[SourceEventLogger] = None,
    ):
        self.api_client = api_client
        self.torrent_service = torrent_service
        self.metadata_client = metadata_client
        self.cache = cache
        self.batch_fetcher = batch_fetcher
        self.events = events
        self._details_extractor = DetailsPageExtractor(api_client.base_url)
        self._obligation_extractor = ObligationPageExtractor()

    @staticmethod
    def build_query(
        term: str, search_by: str, media_type: StreamType
    ) -> dict[str, str]:
        """The tracker query parameters shared by every page of a search."""
        return {
            "mire": term,
            "miben": search_by,
            "miszerint": ORDER_BY_SEEDERS,
            "hogyan": "DESC",
            "tipus": "kivalasztottak_kozott",
            "kivalasztott_tipus": (
                MOVIE_CATEGORY_FILTERS
                if media_type is StreamType.MOVIE
                else SERIES_CATEGORY_FILTERS
            ),
            "jsons": "true",
        }

    async def find(
        self,
        imdb_id: str,
        media_type: StreamType,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> list[TorrentCandidate]:
        """
        Returns the candidates for a title, unranked.

        A tracker outage during the by-id search is logged and handled like
        an empty result, so the fallback still gets its chance.

        Raises:
            AuthenticationError: If the tracker login fails.
        """
        query = self.build_query(imdb_id, SEARCH_BY_IMDB, media_type)
        try:
            hits = await self.search(query)
        except SourceUnavailableError as e:
            log.warning(f"[yellow]Search by id for {imdb_id} failed: {e}[/yellow]")
            hits = ()
        candidates = self._to_candidates(hits, season, episode)
        if candidates:
            return candidates

        log.info(
            f"No playable torrents for {imdb_id} by id, "
            "falling back to a search by title."
        )
        return await self._find_speculative(imdb_id, media_type, season, episode)

    async def _find_speculative(
        self,
        imdb_id: str,
        media_type: StreamType,
        season: Optional[int],
        episode: Optional[int],
    ) -> list[TorrentCandidate]:
        try:
            name = await self.metadata_client.get_name(media_type.value, imdb_id)
            query = self.build_query(name, SEARCH_BY_NAME, media_type)
            hits = await self.search(query)
        except AuthenticationError:
            raise
        except NcoreStreamError as e:
            log.warning(f"[yellow]Fallback search for {imdb_id} failed: {e}[/yellow]")
            return []

        candidates = [
            c.as_speculative() for c in self._to_candidates(hits, season, episode)
        ]
        if self.events:
            self.events.fallback_search(imdb_id, name, len(candidates))
        return candidates

    async def search(self, query: dict[str, str]) -> tuple[EnrichedHit, ...]:
        """
        Runs a search over every result page and enriches each hit with its
        parsed torrent file. Results are cached per normalized query.
        """
        cached = self.cache.get(query)
        if cached is not None:
            log.debug(f"Search cache hit for '{query['mire']}'.")
            if self.events:
                self.events.search_completed(
                    query["mire"], len(cached), len(cached), 0.0, cached=True
                )
            return cached

        start_time = time.monotonic()
        first_page = await self.api_client.search({**query, "oldal": "1"})
        remaining = await gather_fail_fast(
            self.api_client.search({**query, "oldal": str(page)})
            for page in range(2, first_page.page_count + 1)
        )
        pages: list[SearchPage] = [first_page, *remaining]
        raw_hits = [hit for page in pages for hit in page.results]

        enriched = await self.batch_fetcher.map_successful(
            raw_hits,
            self._enrich,
            describe=lambda hit: f"torrent {hit.torrent_id} ({hit.release_name})",
        )
        result = tuple(enriched)
        self.cache.set(query, result)

        if self.events:
            self.events.search_completed(
                query["mire"],
                len(raw_hits),
                len(result),
                time.monotonic() - start_time,
                cached=False,
            )
        return result

    async def _enrich(self, hit: SearchHit) -> EnrichedHit:
        torrent = await self.torrent_service.download_and_parse(hit.download_url)
        return EnrichedHit(hit=hit, torrent=torrent)

    def _to_candidates(
        self,
        hits: tuple[EnrichedHit, ...],
        season: Optional[int],
        episode: Optional[int],
    ) -> list[TorrentCandidate]:
        """Keeps the hits that hold a playable file for the requested episode."""
        candidates = []
        for enriched in hits:
            hit, torrent = enriched.hit, enriched.torrent
            file_index = select_media_file_index(torrent.files, season, episode)
            if file_index is None:
                continue
            candidates.append(
                TorrentCandidate(
                    source_name=self.source_name,
                    source_id=hit.torrent_id,
                    title=hit.release_name or torrent.name,
                    category=hit.category,
                    info_hash=torrent.info_hash,
                    seeders=hit.seeders,
                    leechers=hit.leechers,
                    size=hit.size or torrent.total_length,
                    download_url=hit.download_url,
                    files=torrent.files,
                    media_file_index=file_index,
                )
            )
        return candidates

    async def get_torrent_url(self, source_id: str) -> Optional[str]:
        """Resolves a tracker torrent id to its .torrent download URL."""
        html = await self.api_client.fetch_details_page(source_id)
        return self._details_extractor.extract(html)

    async def get_removable_info_hashes(self) -> list[str]:
        """
        Returns the info hashes of torrents the tracker no longer requires to
        be seeded. Rows that cannot be resolved are skipped.
        """
        html = await self.api_client.fetch_obligation_page()
        source_ids = self._obligation_extractor.extract(html)
        log.debug(f"{len(source_ids)} torrents are free of seeding obligations.")
        return await self.batch_fetcher.map_successful(
            source_ids,
            self._resolve_info_hash,
            describe=lambda source_id: f"removable torrent {source_id}",
        )

    async def _resolve_info_hash(self, source_id: str) -> str:
        url = await self.get_torrent_url(source_id)
        if not url:
            raise NotFoundError(f"No download link for torrent {source_id}")
        torrent = await self.torrent_service.download_and_parse(url)
        return torrent.info_hash
