import pytest

from ncore_stream.models.torrent import TorrentFile
from ncore_stream.utils.media import (
    guess_content_type,
    is_supported_media,
    select_media_file_index,
)


def files(*entries):
    return [TorrentFile(path=path, length=length) for path, length in entries]


@pytest.mark.parametrize(
    "path,expected",
    [
        ("a/movie.mkv", True),
        ("MOVIE.MP4", True),
        ("clip.m2ts", True),
        ("readme.nfo", False),
        ("subs.srt", False),
    ],
)
def test_is_supported_media(path, expected):
    assert is_supported_media(path) is expected


def test_guess_content_type():
    assert guess_content_type("x/movie.mkv") == "video/x-matroska"
    assert guess_content_type("movie.mp4") == "video/mp4"
    assert guess_content_type("unknown.zzz") == "application/octet-stream"


def test_movie_picks_largest_media_file():
    entries = files(
        ("Movie/movie.mkv", 5000),
        ("Movie/extra.mkv", 9000),
        ("Movie/cover.jpg", 99999),
    )
    assert select_media_file_index(entries) == 1


def test_samples_are_never_picked():
    entries = files(("Movie/Sample/sample.mkv", 100), ("Movie/movie-sample.mkv", 200))
    assert select_media_file_index(entries) is None


@pytest.mark.parametrize(
    "name",
    ["Show.S01E02.1080p.mkv", "show.s1e2.mkv", "Show 1x02.mp4", "Show.S01.E02.avi"],
)
def test_episode_markers_match(name):
    entries = files(("Show/Show.S01E01.mkv", 900), (f"Show/{name}", 100))
    assert select_media_file_index(entries, season=1, episode=2) == 1


def test_episode_number_must_match_exactly():
    entries = files(("Show/Show.S01E12.mkv", 100), ("Show/Show.S11E02.mkv", 100))
    assert select_media_file_index(entries, season=1, episode=2) is None


def test_single_file_torrent_matches_episode_by_name():
    entries = files(("Show.S02E05.720p.mkv", 100))
    assert select_media_file_index(entries, season=2, episode=5) == 0
    assert select_media_file_index(entries, season=2, episode=6) is None


def test_no_media_yields_none():
    assert select_media_file_index(files(("a.txt", 1))) is None
    assert select_media_file_index([]) is None
