"""
Structured event logging: human-readable console lines plus an optional
machine-parseable JSONL file.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable records.

    Usage:
        logger = StructuredLogger("ncore_stream.events")
        logger.info("torrent_added", info_hash="ab12...", files=3)
    """

    def __init__(self, name: str, log_dir: Path | None = None):
        """
        Args:
            name: Logger name used for the console output.
            log_dir: Directory for JSONL event files (None = console only).
        """
        self.name = name
        self._logger = logging.getLogger(name)
        self._json_file = None
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"ncore_stream_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    @property
    def json_enabled(self) -> bool:
        return self._json_file is not None and not self._json_file.closed

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self.json_enabled:
            return
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }
        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _log(self, level: int, event: str, **context) -> None:
        self._logger.log(level, self._format_message(event, **context))
        self._write_json(logging.getLevelName(level), event, **context)

    def info(self, event: str, **context) -> None:
        self._log(logging.INFO, event, **context)

    def error(self, event: str, **context) -> None:
        self._log(logging.ERROR, event, **context)

    def close(self) -> None:
        if self.json_enabled:
            self._json_file.close()


class StoreEventLogger:
    """Events emitted by the torrent store."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def torrent_added(self, info_hash: str, name: str, file_count: int, path: str):
        self.logger.info(
            "torrent_added",
            info_hash=info_hash,
            name=name,
            file_count=file_count,
            path=path,
        )

    def torrent_deleted(self, info_hash: str, name: str):
        self.logger.info("torrent_deleted", info_hash=info_hash, name=name)

    def torrent_load_failed(self, path: str, error: str):
        self.logger.error("torrent_load_failed", path=path, error=error)

    def cleanup_completed(self, requested: int, deleted: int):
        self.logger.info("cleanup_completed", requested=requested, deleted=deleted)


class SourceEventLogger:
    """Events emitted by the tracker source aggregator."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def login(self, expires_at: float):
        self.logger.info(
            "tracker_login",
            expires_at=datetime.fromtimestamp(expires_at).isoformat(),
        )

    def search_completed(
        self, query: str, hits: int, candidates: int, duration_s: float, cached: bool
    ):
        self.logger.info(
            "search_completed",
            query=query,
            hits=hits,
            candidates=candidates,
            duration_s=round(duration_s, 2),
            cached=cached,
        )

    def fallback_search(self, imdb_id: str, title: str, candidates: int):
        self.logger.info(
            "fallback_search", imdb_id=imdb_id, title=title, candidates=candidates
        )


def create_structured_loggers(
    log_dir: Path | None = None,
) -> tuple[StructuredLogger, StoreEventLogger, SourceEventLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, store_logger, source_logger)
    """
    base = StructuredLogger("ncore_stream.events", log_dir=log_dir)
    return base, StoreEventLogger(base), SourceEventLogger(base)
