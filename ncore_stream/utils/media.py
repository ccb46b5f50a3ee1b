"""
Helpers for recognizing playable media files inside torrents.
"""

import mimetypes
import re
from collections.abc import Sequence
from pathlib import PurePosixPath

from ncore_stream.models.torrent import TorrentFile

SUPPORTED_MEDIA_EXTENSIONS = frozenset(
    {
        ".mkv",
        ".mp4",
        ".avi",
        ".mov",
        ".m4v",
        ".webm",
        ".wmv",
        ".mpg",
        ".mpeg",
        ".ts",
        ".m2ts",
    }
)

_EXTRA_MIME_TYPES = {
    ".mkv": "video/x-matroska",
    ".m2ts": "video/mp2t",
    ".ts": "video/mp2t",
    ".m4v": "video/x-m4v",
    ".webm": "video/webm",
}

_SAMPLE_REGEX = re.compile(r"(^|[\W_])sample([\W_]|$)", re.IGNORECASE)


def is_supported_media(path: str) -> bool:
    """True when the file extension is a streamable video container."""
    return PurePosixPath(path).suffix.lower() in SUPPORTED_MEDIA_EXTENSIONS


def guess_content_type(path: str) -> str:
    """Returns the MIME type for a file path, defaulting to a byte stream."""
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in _EXTRA_MIME_TYPES:
        return _EXTRA_MIME_TYPES[suffix]
    content_type, _ = mimetypes.guess_type(path)
    return content_type or "application/octet-stream"


def _episode_regex(season: int, episode: int) -> re.Pattern:
    return re.compile(
        rf"(?:s0*{season}[\s._-]*e0*{episode}(?!\d))|(?:(?<!\d)0*{season}x0*{episode}(?!\d))",
        re.IGNORECASE,
    )


def select_media_file_index(
    files: Sequence[TorrentFile],
    season: int | None = None,
    episode: int | None = None,
) -> int | None:
    """
    Picks the file to play from a torrent.

    Without an episode the largest supported media file wins. With an
    episode the largest supported file whose name carries the matching
    SxxEyy / NxMM marker wins. Sample clips are never picked.

    Returns:
        The index into `files`, or None when no file qualifies.
    """
    candidates = [
        (i, f)
        for i, f in enumerate(files)
        if is_supported_media(f.path) and not _SAMPLE_REGEX.search(PurePosixPath(f.path).stem)
    ]
    if season is not None and episode is not None:
        pattern = _episode_regex(season, episode)
        candidates = [
            (i, f) for i, f in candidates if pattern.search(PurePosixPath(f.path).name)
        ]
    if not candidates:
        return None
    best_index, _ = max(candidates, key=lambda pair: pair[1].length)
    return best_index
