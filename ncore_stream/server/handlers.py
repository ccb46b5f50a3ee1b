"""
HTTP handlers for the addon endpoints.

Endpoints:
- GET /manifest.json - addon manifest
- GET /stream/{type}/{id} - ranked streams for a title
- GET|HEAD /stream/play/{source_name}/{source_id}/{info_hash}/{file_index} - file bytes
- GET /torrents - store statistics (admin)
- DELETE /torrents/{info_hash} - remove a torrent (admin)
"""

import hmac
import logging

from aiohttp import ClientConnectionError, web

from ncore_stream import __version__
from ncore_stream.exceptions import (
    AdminAccessError,
    InvalidRequestError,
    NcoreStreamError,
    NotFoundError,
)
from ncore_stream.models.stream import PlayRequest, StreamQuery
from ncore_stream.models.torrent import TorrentResource
from ncore_stream.utils.media import guess_content_type

from .services import AddonServices

log = logging.getLogger(__name__)

ADMIN_TOKEN_HEADER = "X-Admin-Token"
CACHE_CONTROL = "public, max-age=604800"

MANIFEST = {
    "id": "hu.ncore.stream",
    "version": __version__,
    "name": "nCore",
    "description": "Streams torrents from nCore directly to the player.",
    "resources": ["stream"],
    "types": ["movie", "series"],
    "idPrefixes": ["tt"],
    "catalogs": [],
}


class StreamHandlers:
    """Request handlers bound to one set of addon services."""

    def __init__(self, services: AddonServices):
        self.services = services

    def register(self, app: web.Application) -> None:
        router = app.router
        router.add_get("/manifest.json", self.handle_manifest)
        router.add_get(
            "/stream/play/{source_name}/{source_id}/{info_hash}/{file_index}",
            self.handle_play,
        )
        router.add_get("/stream/{type}/{id}", self.handle_streams)
        router.add_get("/torrents", self.handle_torrent_stats)
        router.add_delete("/torrents/{info_hash}", self.handle_delete_torrent)

    async def handle_manifest(self, request: web.Request) -> web.Response:
        return web.json_response(MANIFEST)

    async def handle_streams(self, request: web.Request) -> web.Response:
        """GET /stream/{type}/{id} - ranked stream descriptors for a title."""
        try:
            query = StreamQuery.from_path(
                request.match_info["type"],
                request.match_info["id"],
                request.query.get("season"),
                request.query.get("episode"),
            )
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        candidates = await self.services.aggregator.find(
            query.imdb_id, query.type, query.season, query.episode
        )
        descriptors = self.services.stream_service.to_descriptors(candidates)
        log.info(f"Serving {len(descriptors)} streams for {query.imdb_id}.")
        return web.json_response(
            {"streams": [d.model_dump() for d in descriptors]}
        )

    async def _resolve_resource(self, play: PlayRequest) -> TorrentResource:
        """Returns the active resource, fetching its torrent file if needed."""
        store = self.services.store
        resource = store.get(play.info_hash)
        if resource is not None:
            return resource

        aggregator = self.services.aggregator
        if play.source_name != aggregator.source_name:
            raise NotFoundError(f"Unknown source '{play.source_name}'")
        torrent_url = await aggregator.get_torrent_url(play.source_id)
        if not torrent_url:
            raise NotFoundError("Torrent not found")

        torrent_file_path = await self.services.torrent_service.download_torrent_file(
            torrent_url
        )
        resource = await store.add(torrent_file_path)
        if resource.info_hash != play.info_hash:
            log.warning(
                f"[yellow]Torrent {play.source_id} resolved to {resource.info_hash}, "
                f"not the requested {play.info_hash}.[/yellow]"
            )
        return resource

    async def handle_play(self, request: web.Request) -> web.StreamResponse:
        """GET|HEAD /stream/play/... - serves a byte range of a torrent file."""
        try:
            play = PlayRequest(**request.match_info)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        resource = await self._resolve_resource(play)
        if play.file_index >= len(resource.files):
            raise InvalidRequestError("Invalid file index")

        torrent_file = resource.files[play.file_index]
        content_type = guess_content_type(torrent_file.path)

        if request.method == "HEAD":
            return web.Response(
                status=200,
                headers={
                    "Content-Length": str(torrent_file.length),
                    "Content-Type": content_type,
                    "Accept-Ranges": "bytes",
                },
            )

        negotiator = self.services.negotiator
        byte_range = negotiator.negotiate(
            request.headers.get("Range"), torrent_file.length
        )
        store = self.services.store
        window = negotiator.resume_window(byte_range, torrent_file.length)
        if window is not None:
            await store.prioritize(
                resource, play.file_index, window.start, window.length
            )

        response = web.StreamResponse(
            status=206,
            headers={
                "Content-Range": (
                    f"bytes {byte_range.start}-{byte_range.end}/{torrent_file.length}"
                ),
                "Content-Length": str(byte_range.length),
                "Content-Type": content_type,
                "Accept-Ranges": "bytes",
                "Cache-Control": CACHE_CONTROL,
            },
        )
        await response.prepare(request)
        log.debug(
            f"Streaming bytes {byte_range.start}-{byte_range.end} of "
            f"'{torrent_file.path}'."
        )
        try:
            async for chunk in store.iter_range(
                resource,
                play.file_index,
                byte_range,
                self.services.config.stream_chunk_bytes,
            ):
                await response.write(chunk)
            await response.write_eof()
        except (ClientConnectionError, ConnectionResetError) as e:
            log.debug(f"Client disconnected during stream: {e}")
        except NcoreStreamError as e:
            # Headers are already sent.
            log.warning(
                f"[yellow]Stream of '{torrent_file.path}' aborted at "
                f"{byte_range.start}-{byte_range.end}: {e}[/yellow]"
            )
            response.force_close()
        return response

    def _require_admin(self, request: web.Request) -> None:
        expected = self.services.config.admin_token
        if not expected:
            raise AdminAccessError("Admin endpoints are disabled")
        provided = request.headers.get(ADMIN_TOKEN_HEADER, "")
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            raise AdminAccessError("Invalid admin token")

    async def handle_torrent_stats(self, request: web.Request) -> web.Response:
        self._require_admin(request)
        stats = await self.services.store.stats()
        return web.json_response([s.to_dict() for s in stats])

    async def handle_delete_torrent(self, request: web.Request) -> web.Response:
        self._require_admin(request)
        info_hash = request.match_info["info_hash"]
        if not await self.services.store.delete(info_hash):
            raise NotFoundError(f"Torrent {info_hash} is not active")
        return web.Response(status=204)
