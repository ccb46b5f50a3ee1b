"""Pytest configuration and shared fixtures for ncore-stream tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeEngine, build_torrent_bytes

from ncore_stream.models.config import StreamConfig


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def torrent_dirs(tmp_path) -> dict[str, Path]:
    dirs = {
        "torrents": tmp_path / "torrents",
        "downloads": tmp_path / "downloads",
        "addon": tmp_path / "addon",
    }
    for path in dirs.values():
        path.mkdir()
    return dirs


@pytest.fixture
def write_torrent(torrent_dirs):
    """Writes a torrent into the torrents directory and returns its path."""

    def _write(name: str, filename: str | None = None, **kwargs) -> Path:
        path = torrent_dirs["torrents"] / (filename or f"{name}.torrent")
        path.write_bytes(build_torrent_bytes(name, **kwargs))
        return path

    return _write


@pytest.fixture
def config(torrent_dirs) -> StreamConfig:
    return StreamConfig(
        ncore_username="user",
        ncore_password="secret",
        addon_dir=str(torrent_dirs["addon"]),
        torrents_dir=str(torrent_dirs["torrents"]),
        downloads_dir=str(torrent_dirs["downloads"]),
        admin_token="admintoken",
        initial_window_bytes=1024,
        resume_window_bytes=4096,
        stream_chunk_bytes=512,
    )


