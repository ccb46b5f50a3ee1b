from unittest.mock import AsyncMock, MagicMock

import pytest

from ncore_stream.core.source_aggregator import SourceAggregator
from ncore_stream.exceptions import (
    AuthenticationError,
    NotFoundError,
    SourceUnavailableError,
    TorrentParseError,
)
from ncore_stream.models.stream import StreamType
from ncore_stream.models.torrent import ParsedTorrent, SearchHit, SearchPage, TorrentFile
from ncore_stream.storage.cache import QueryCache, normalize_query_key
from ncore_stream.utils.batch_fetcher import BatchFetcher


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def hit(torrent_id, seeders=5, name=None):
    return SearchHit(
        torrent_id=torrent_id,
        release_name=name or f"Release.{torrent_id}",
        download_url=f"https://ncore.pro/torrents.php?action=download&id={torrent_id}",
        category="hdser",
        size=1000,
        seeders=seeders,
    )


def parsed(torrent_id, *paths):
    return ParsedTorrent(
        info_hash=f"{int(torrent_id):040x}",
        name=f"Release.{torrent_id}",
        piece_length=16384,
        files=tuple(TorrentFile(path=p, length=100 * (i + 1)) for i, p in enumerate(paths)),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def parts(clock):
    client = MagicMock()
    client.base_url = "https://ncore.pro"
    client.search = AsyncMock(return_value=SearchPage())
    client.fetch_details_page = AsyncMock()
    client.fetch_obligation_page = AsyncMock()

    torrents = {}
    torrent_service = MagicMock()

    async def download_and_parse(url):
        torrent_id = url.rsplit("=", 1)[1]
        if torrent_id not in torrents:
            raise TorrentParseError(f"bad torrent {torrent_id}")
        return torrents[torrent_id]

    torrent_service.download_and_parse = AsyncMock(side_effect=download_and_parse)

    metadata = MagicMock()
    metadata.get_name = AsyncMock(return_value="Some Show")

    cache = QueryCache(
        ttl_seconds=3600, max_entries=10, key_fn=normalize_query_key, clock=clock
    )
    aggregator = SourceAggregator(
        client, torrent_service, metadata, cache, BatchFetcher(5, 0)
    )
    return aggregator, client, torrents, metadata


def pages_by_number(pages):
    async def search(params):
        return pages[params["miben"]][int(params["oldal"]) - 1]

    return search


@pytest.mark.asyncio
async def test_search_by_id_fetches_every_page_and_filters(parts):
    aggregator, client, torrents, _ = parts
    torrents["1"] = parsed("1", "Show/Show.S01E02.mkv", "Show/Show.S01E03.mkv")
    torrents["2"] = parsed("2", "Show/Show.S01E05.mkv")
    torrents["3"] = parsed("3", "Show.S01E02.720p.mkv")
    client.search.side_effect = pages_by_number(
        {
            "imdb": [
                SearchPage(results=[hit("1"), hit("2")], total_results=3, perpage=2),
                SearchPage(results=[hit("3")], total_results=3, perpage=2),
            ]
        }
    )

    candidates = await aggregator.find("tt0000001", StreamType.SERIES, 1, 2)

    assert [c.source_id for c in candidates] == ["1", "3"]
    assert candidates[0].media_file_index == 0
    assert candidates[0].info_hash == f"{1:040x}"
    assert not any(c.is_speculative for c in candidates)
    pages = sorted(call.args[0]["oldal"] for call in client.search.await_args_list)
    assert pages == ["1", "2"]
    first_params = client.search.await_args_list[0].args[0]
    assert first_params["mire"] == "tt0000001"
    assert first_params["miben"] == "imdb"
    assert first_params["jsons"] == "true"


@pytest.mark.asyncio
async def test_repeated_query_is_served_from_cache_until_ttl(parts, clock):
    aggregator, client, torrents, _ = parts
    torrents["1"] = parsed("1", "Movie/movie.mkv")
    client.search.return_value = SearchPage(results=[hit("1")], total_results=1, perpage=25)

    first = await aggregator.find("tt0000002", StreamType.MOVIE)
    second = await aggregator.find("tt0000002", StreamType.MOVIE)
    assert first == second
    assert client.search.await_count == 1

    clock.now += 3601
    await aggregator.find("tt0000002", StreamType.MOVIE)
    assert client.search.await_count == 2


@pytest.mark.asyncio
async def test_unparseable_torrents_are_omitted(parts):
    aggregator, client, torrents, _ = parts
    torrents["2"] = parsed("2", "Movie/movie.mkv")
    client.search.return_value = SearchPage(
        results=[hit("1"), hit("2")], total_results=2, perpage=25
    )
    candidates = await aggregator.find("tt0000003", StreamType.MOVIE)
    assert [c.source_id for c in candidates] == ["2"]


@pytest.mark.asyncio
async def test_fallback_marks_name_search_results_speculative(parts):
    aggregator, client, torrents, metadata = parts
    torrents["9"] = parsed("9", "Some.Show.S01E02.mkv")
    client.search.side_effect = pages_by_number(
        {
            "imdb": [SearchPage()],
            "name": [SearchPage(results=[hit("9")], total_results=1, perpage=25)],
        }
    )

    candidates = await aggregator.find("tt0000001", StreamType.SERIES, 1, 2)

    assert len(candidates) == 1
    assert candidates[0].is_speculative is True
    metadata.get_name.assert_awaited_once_with("series", "tt0000001")
    name_params = client.search.await_args_list[-1].args[0]
    assert name_params["mire"] == "Some Show"
    assert name_params["miben"] == "name"


@pytest.mark.asyncio
async def test_fallback_runs_when_by_id_hits_lack_the_episode(parts):
    aggregator, client, torrents, _ = parts
    torrents["1"] = parsed("1", "Show.S01E07.mkv")
    torrents["9"] = parsed("9", "Show.S01E02.mkv")
    client.search.side_effect = pages_by_number(
        {
            "imdb": [SearchPage(results=[hit("1")], total_results=1, perpage=25)],
            "name": [SearchPage(results=[hit("9")], total_results=1, perpage=25)],
        }
    )
    candidates = await aggregator.find("tt0000001", StreamType.SERIES, 1, 2)
    assert [(c.source_id, c.is_speculative) for c in candidates] == [("9", True)]


@pytest.mark.asyncio
async def test_fallback_failure_yields_empty_list(parts):
    aggregator, _, _, metadata = parts
    metadata.get_name.side_effect = NotFoundError("unknown title")
    assert await aggregator.find("tt0000004", StreamType.MOVIE) == []


@pytest.mark.asyncio
async def test_tracker_outage_on_id_search_still_tries_fallback(parts):
    aggregator, client, _, metadata = parts
    client.search.side_effect = SourceUnavailableError("down")
    assert await aggregator.find("tt0000005", StreamType.MOVIE) == []
    metadata.get_name.assert_awaited_once()


@pytest.mark.asyncio
async def test_authentication_failure_propagates(parts):
    aggregator, client, _, _ = parts
    client.search.side_effect = AuthenticationError("no pass cookie")
    with pytest.raises(AuthenticationError):
        await aggregator.find("tt0000006", StreamType.MOVIE)


@pytest.mark.asyncio
async def test_get_torrent_url(parts):
    aggregator, client, _, _ = parts
    client.fetch_details_page.return_value = (
        '<div class="download"><a href="torrents.php?action=download&id=5">x</a></div>'
    )
    assert (
        await aggregator.get_torrent_url("5")
        == "https://ncore.pro/torrents.php?action=download&id=5"
    )
    client.fetch_details_page.assert_awaited_once_with("5")


@pytest.mark.asyncio
async def test_removable_info_hashes_skip_unresolvable_rows(parts):
    aggregator, client, torrents, _ = parts
    torrents["1"] = parsed("1", "a.mkv")
    client.fetch_obligation_page.return_value = """
        <div class="hnr_all">
          <div class="hnr_tname"><a href="torrents.php?action=details&id=1">A</a></div>
          <div class="hnr_ttimespent">-</div>
        </div>
        <div class="hnr_all2">
          <div class="hnr_tname"><a href="torrents.php?action=details&id=2">B</a></div>
          <div class="hnr_ttimespent">-</div>
        </div>
    """

    async def details(source_id):
        if source_id == "1":
            return '<div class="download"><a href="torrents.php?action=download&id=1">x</a></div>'
        return "<html></html>"

    client.fetch_details_page.side_effect = details
    assert await aggregator.get_removable_info_hashes() == [f"{1:040x}"]
