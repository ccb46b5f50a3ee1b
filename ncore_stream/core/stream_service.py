"""
Ranks torrent candidates and converts them to caller-facing stream entries.
"""

import logging
from collections.abc import Iterable
from pathlib import PurePosixPath

from ncore_stream.models.stream import BehaviorHints, StreamDescriptor
from ncore_stream.models.torrent import TorrentCandidate
from ncore_stream.utils.formatting import format_size

log = logging.getLogger(__name__)

ADDON_NAME = "nCore"
RECOMMENDED_MARKER = "⭐"
SPECULATIVE_MARKER = "❓"


def ranking_key(candidate: TorrentCandidate) -> tuple[bool, int, int]:
    """Sort key: confirmed before speculative, then seeders, then size."""
    return (candidate.is_speculative, -candidate.seeders, -candidate.size)


class StreamService:
    def __init__(self, public_url: str):
        self.public_url = public_url.rstrip("/")

    @staticmethod
    def rank(candidates: Iterable[TorrentCandidate]) -> list[TorrentCandidate]:
        return sorted(candidates, key=ranking_key)

    def play_url(self, candidate: TorrentCandidate) -> str:
        return (
            f"{self.public_url}/stream/play/{candidate.source_name}/"
            f"{candidate.source_id}/{candidate.info_hash}/{candidate.media_file_index}"
        )

    def to_descriptor(
        self, candidate: TorrentCandidate, recommended: bool = False
    ) -> StreamDescriptor:
        name = ADDON_NAME
        if candidate.category:
            name += f"\n{candidate.category}"
        if recommended:
            name = f"{RECOMMENDED_MARKER} {name}"

        title_lines = [candidate.title]
        file_name = PurePosixPath(candidate.media_file.path).name
        if file_name != candidate.title:
            title_lines.append(file_name)
        title_lines.append(
            f"👤 {candidate.seeders}  💾 {format_size(candidate.media_file.length)}"
        )
        if candidate.is_speculative:
            title_lines[0] = f"{SPECULATIVE_MARKER} {title_lines[0]}"

        return StreamDescriptor(
            name=name,
            title="\n".join(title_lines),
            url=self.play_url(candidate),
            behaviorHints=BehaviorHints(
                bingeGroup=f"{candidate.source_name}|{candidate.category or 'any'}"
            ),
            recommended=recommended,
        )

    def to_descriptors(
        self, candidates: Iterable[TorrentCandidate]
    ) -> list[StreamDescriptor]:
        """Ranks the candidates and flags the first one as recommended."""
        ranked = self.rank(candidates)
        log.debug(f"Ranked {len(ranked)} candidates.")
        return [
            self.to_descriptor(candidate, recommended=(i == 0))
            for i, candidate in enumerate(ranked)
        ]
