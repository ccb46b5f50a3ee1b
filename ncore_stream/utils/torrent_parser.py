"""
Decodes .torrent metadata into the fields the addon works with.
"""

import hashlib
from typing import Any

import bencodepy

from ncore_stream.exceptions import TorrentParseError
from ncore_stream.models.torrent import ParsedTorrent, TorrentFile


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _get(mapping: dict, key: str) -> Any:
    """Bencoded dictionaries may come back with bytes or str keys."""
    if key in mapping:
        return mapping[key]
    return mapping.get(key.encode("ascii"))


def parse_torrent(data: bytes) -> ParsedTorrent:
    """
    Parses raw .torrent bytes.

    The info hash is the SHA-1 of the bencoded `info` dictionary. Multi-file
    torrents list their files under the torrent name as a directory.

    Raises:
        TorrentParseError: If the data is not a valid torrent.
    """
    try:
        meta = bencodepy.decode(data)
    except Exception as e:
        raise TorrentParseError(f"Invalid bencoded data: {e}") from e

    if not isinstance(meta, dict):
        raise TorrentParseError("Torrent metadata is not a dictionary.")
    info = _get(meta, "info")
    if not isinstance(info, dict):
        raise TorrentParseError("Torrent metadata has no info dictionary.")

    info_hash = hashlib.sha1(bencodepy.encode(info)).hexdigest()  # noqa: S324
    name = _text(_get(info, "name") or info_hash)
    piece_length = int(_get(info, "piece length") or 0)

    raw_files = _get(info, "files")
    if raw_files is not None:
        files = tuple(
            TorrentFile(
                path="/".join([name, *(_text(p) for p in _get(f, "path") or [])]),
                length=int(_get(f, "length") or 0),
            )
            for f in raw_files
        )
    else:
        length = _get(info, "length")
        if length is None:
            raise TorrentParseError("Torrent info has neither files nor length.")
        files = (TorrentFile(path=name, length=int(length)),)

    return ParsedTorrent(
        info_hash=info_hash, name=name, piece_length=piece_length, files=files
    )
