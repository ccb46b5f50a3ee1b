"""
Turns an HTTP Range header into the byte window served for a file.
"""

import logging
import re
from typing import Optional

from ncore_stream.exceptions import RangeNotSatisfiableError
from ncore_stream.models.torrent import ByteRange

log = logging.getLogger(__name__)

_RANGE_REGEX = re.compile(r"bytes=(\d*)-(\d*)")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


class RangeNegotiator:
    """
    Accepts a single `bytes=<start>?-<end>?` range.

    A window starting at byte 0 is widened to at least `initial_window`
    bytes so playback has data to start from. A window starting later is
    served as requested; `resume_window` then gives the larger span the
    engine should fetch ahead of it.
    """

    def __init__(
        self,
        initial_window: int,
        resume_window: int,
        max_chunk: Optional[int] = None,
    ):
        self.initial_window = initial_window
        self.resume_window_size = resume_window
        self.max_chunk = max_chunk

    @staticmethod
    def parse(range_header: Optional[str]) -> Optional[tuple[Optional[int], Optional[int]]]:
        """
        Splits a Range header into its raw start and end positions.

        Returns:
            (start, end) with None for an omitted side, or None when the
            header is absent or malformed.
        """
        if not range_header:
            return None
        match = _RANGE_REGEX.fullmatch(range_header.strip())
        if match is None:
            return None
        start_text, end_text = match.groups()
        if not start_text and not end_text:
            return None
        start = int(start_text) if start_text else None
        end = int(end_text) if end_text else None
        return start, end

    def negotiate(self, range_header: Optional[str], file_length: int) -> ByteRange:
        """
        Computes the inclusive byte window to serve.

        Raises:
            RangeNotSatisfiableError: If the header is missing, malformed or
                selects no bytes of the file.
        """
        byte_range = self._resolve(range_header, file_length)
        if byte_range is None:
            log.debug(f"Unsatisfiable range '{range_header}' for {file_length} bytes.")
            raise RangeNotSatisfiableError(file_length)

        if byte_range.start == 0:
            minimum_end = min(self.initial_window, file_length) - 1
            if byte_range.end < minimum_end:
                byte_range = ByteRange(0, minimum_end)
        return byte_range

    def _resolve(
        self, range_header: Optional[str], file_length: int
    ) -> Optional[ByteRange]:
        parsed = self.parse(range_header)
        if parsed is None or file_length <= 0:
            return None
        start, end = parsed
        last = file_length - 1

        if start is None:
            # Suffix form: the last N bytes.
            length = _clamp(end, 0, file_length)
            if length <= 0:
                return None
            return ByteRange(file_length - length, last)

        if start >= file_length or (end is not None and end >= file_length):
            return None

        if end is None:
            limit = last
            if self.max_chunk:
                limit = min(start + self.max_chunk - 1, last)
            return ByteRange(start, limit)

        if end < start:
            return None
        clamped_start = _clamp(start, 0, last)
        clamped_end = _clamp(end, clamped_start, last)
        return ByteRange(clamped_start, clamped_end)

    def resume_window(
        self, byte_range: ByteRange, file_length: int
    ) -> Optional[ByteRange]:
        """
        The span to prefetch for a read that resumes mid-file, or None for a
        read from the beginning.
        """
        if byte_range.start == 0:
            return None
        end = min(byte_range.start + self.resume_window_size, file_length) - 1
        return ByteRange(byte_range.start, max(end, byte_range.end))
