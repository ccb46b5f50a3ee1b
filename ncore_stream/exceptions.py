"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class NcoreStreamError(Exception):
    """Base exception for all application-specific errors."""


class AuthenticationError(NcoreStreamError):
    """Raised when the tracker rejects the login or returns no session cookie."""


class SourceUnavailableError(NcoreStreamError):
    """Raised when the tracker or metadata service cannot be reached."""


class InvalidRequestError(NcoreStreamError):
    """Raised for malformed request parameters."""


class NotFoundError(NcoreStreamError):
    """Raised when a source id or torrent cannot be resolved."""


class RangeNotSatisfiableError(NcoreStreamError):
    """
    Raised when a Range header cannot be served. Carries the total file length
    so the caller can report it in the Content-Range header.
    """

    def __init__(self, file_length: int, message: str = "Range not satisfiable"):
        super().__init__(message)
        self.file_length = file_length


class TorrentParseError(NcoreStreamError):
    """Raised when torrent metadata cannot be decoded."""


class AdminAccessError(NcoreStreamError):
    """Raised when an admin endpoint is called without a valid token."""


class ConfigurationError(NcoreStreamError):
    """Raised for issues related to configuration loading or validation."""


class TransferError(NcoreStreamError):
    """Raised when the transfer engine cannot deliver the requested bytes."""
