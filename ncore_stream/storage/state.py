"""
Durable mapping from info hash to the originating .torrent file path.
"""

import asyncio
import json
import logging
import os
from pathlib import Path

import aiofiles

log = logging.getLogger(__name__)


class PersistedState:
    """
    A JSON file holding `{info_hash: torrent_file_path}`. The whole file is
    rewritten after every change through a temporary file and an atomic rename,
    so a crash never leaves a half-written state behind.
    """

    def __init__(self, state_file: Path):
        self.state_file = state_file
        self._paths: dict[str, Path] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, info_hash: str) -> bool:
        return info_hash in self._paths

    def items(self) -> list[tuple[str, Path]]:
        return list(self._paths.items())

    def get(self, info_hash: str) -> Path | None:
        return self._paths.get(info_hash)

    def find_by_path(self, torrent_file_path: Path) -> str | None:
        """Reverse lookup: the info hash recorded for a torrent file path."""
        for info_hash, path in self._paths.items():
            if path == torrent_file_path:
                return info_hash
        return None

    async def load(self) -> dict[str, Path]:
        """Reads the state file. A missing or corrupt file yields an empty state."""
        try:
            async with aiofiles.open(self.state_file, encoding="utf-8") as f:
                raw = json.loads(await f.read())
        except FileNotFoundError:
            raw = {}
        except (json.JSONDecodeError, OSError) as e:
            log.warning(
                f"[yellow]Could not read state file '{self.state_file}': {e}. "
                "Starting with an empty state.[/yellow]"
            )
            raw = {}

        if not isinstance(raw, dict):
            raw = {}
        self._paths = {str(k).lower(): Path(v) for k, v in raw.items()}
        log.debug(f"Loaded {len(self._paths)} persisted torrent entries.")
        return dict(self._paths)

    async def set(self, info_hash: str, torrent_file_path: Path) -> None:
        async with self._lock:
            self._paths[info_hash] = torrent_file_path
            await self._save()

    async def remove(self, info_hash: str) -> Path | None:
        async with self._lock:
            path = self._paths.pop(info_hash, None)
            if path is not None:
                await self._save()
            return path

    async def remove_many(self, info_hashes: list[str]) -> None:
        async with self._lock:
            removed = [h for h in info_hashes if self._paths.pop(h, None) is not None]
            if removed:
                await self._save()

    async def _save(self) -> None:
        payload = json.dumps(
            {k: str(v) for k, v in sorted(self._paths.items())}, indent=2
        )
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
        await asyncio.to_thread(os.replace, tmp_path, self.state_file)
