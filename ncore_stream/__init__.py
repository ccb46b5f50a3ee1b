"""
ncore-stream: resolves nCore torrents for a title and streams their files
over HTTP range requests.
"""

__version__ = "1.4.0"
