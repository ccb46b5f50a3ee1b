"""
Tracker and Metadata API Layer.

This package handles all outbound communication: the nCore tracker and the
Cinemeta metadata service.
"""

from .auth import CredentialSession, NcoreAuthenticator
from .cinemeta import CinemetaClient
from .client import NcoreClient
from .rate_limiter import AdaptiveRateLimiter

__all__ = [
    "AdaptiveRateLimiter",
    "CinemetaClient",
    "CredentialSession",
    "NcoreAuthenticator",
    "NcoreClient",
]
