"""
Transfer engine boundary. The libtorrent-backed implementation lives in
`libtorrent_engine` and is imported where the production engine is built.
"""

from .engine import EngineStatus, EngineTorrent, TransferEngine

__all__ = ["EngineStatus", "EngineTorrent", "TransferEngine"]
