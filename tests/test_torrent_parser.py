import hashlib

import bencodepy
import pytest
from fakes import build_torrent_bytes

from ncore_stream.exceptions import TorrentParseError
from ncore_stream.utils.torrent_parser import parse_torrent


def test_single_file_torrent():
    parsed = parse_torrent(build_torrent_bytes("movie.mkv", length=123456))
    assert parsed.name == "movie.mkv"
    assert len(parsed.files) == 1
    assert parsed.files[0].path == "movie.mkv"
    assert parsed.files[0].length == 123456
    assert parsed.piece_length == 16384


def test_multi_file_paths_are_nested_under_name():
    data = build_torrent_bytes(
        "Show.S01",
        files=[("Show.S01E01.mkv", 100), ("Subs/Show.S01E01.srt", 5)],
    )
    parsed = parse_torrent(data)
    assert [f.path for f in parsed.files] == [
        "Show.S01/Show.S01E01.mkv",
        "Show.S01/Subs/Show.S01E01.srt",
    ]
    assert parsed.total_length == 105


def test_info_hash_is_sha1_of_bencoded_info():
    data = build_torrent_bytes("movie.mkv", length=10)
    info = bencodepy.decode(data)[b"info"]
    expected = hashlib.sha1(bencodepy.encode(info)).hexdigest()  # noqa: S324
    assert parse_torrent(data).info_hash == expected


def test_distinct_torrents_have_distinct_hashes():
    a = parse_torrent(build_torrent_bytes("a.mkv", length=10))
    b = parse_torrent(build_torrent_bytes("b.mkv", length=10))
    assert a.info_hash != b.info_hash


@pytest.mark.parametrize(
    "data",
    [
        b"not bencode",
        bencodepy.encode([1, 2, 3]),
        bencodepy.encode({b"announce": b"x"}),
        bencodepy.encode({b"info": {b"name": b"x"}}),
    ],
)
def test_invalid_metadata_raises(data):
    with pytest.raises(TorrentParseError):
        parse_torrent(data)
