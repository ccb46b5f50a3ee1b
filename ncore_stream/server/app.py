"""
The aiohttp application: error mapping, CORS headers, and the startup and
shutdown of the torrent store and background tasks.
"""

import asyncio
import logging
from contextlib import suppress

from aiohttp import web

from ncore_stream.exceptions import (
    AdminAccessError,
    AuthenticationError,
    InvalidRequestError,
    NcoreStreamError,
    NotFoundError,
    RangeNotSatisfiableError,
    SourceUnavailableError,
    TorrentParseError,
    TransferError,
)

from .handlers import StreamHandlers
from .services import AddonServices

log = logging.getLogger(__name__)

SERVICES_KEY = web.AppKey("services", AddonServices)

ERROR_STATUS: dict[type[NcoreStreamError], int] = {
    InvalidRequestError: 400,
    AdminAccessError: 401,
    NotFoundError: 404,
    RangeNotSatisfiableError: 416,
    AuthenticationError: 502,
    SourceUnavailableError: 502,
    TorrentParseError: 502,
    TransferError: 503,
}


def _error_response(error: Exception, status: int) -> web.Response:
    return web.json_response(
        {"error": type(error).__name__, "message": str(error)}, status=status
    )


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Maps application exceptions to JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except RangeNotSatisfiableError as e:
        response = _error_response(e, 416)
        response.headers["Content-Range"] = f"bytes */{e.file_length}"
        return response
    except NcoreStreamError as e:
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 500
        )
        log.warning(f"{request.method} {request.path} -> {status}: {e}")
        return _error_response(e, status)
    except Exception as e:
        log.exception(f"Unhandled error for {request.method} {request.path}")
        return _error_response(e, 500)


async def _add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    response.headers.setdefault("Access-Control-Allow-Headers", "*")


async def _periodic_cleanup(services: AddonServices, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            deleted = await services.store.delete_unnecessary(services.aggregator)
            log.info(f"Scheduled cleanup deleted {deleted} torrents.")
        except NcoreStreamError as e:
            log.warning(f"[yellow]Scheduled cleanup failed: {e}[/yellow]")


async def _lifecycle(app: web.Application):
    services = app[SERVICES_KEY]
    store = services.store
    await store.start()
    await store.load_all()
    if services.cache is not None:
        await services.cache.start_background_cleanup()

    cleanup_task = None
    interval_hours = services.config.cleanup_interval_hours
    if interval_hours > 0:
        cleanup_task = asyncio.create_task(
            _periodic_cleanup(services, interval_hours * 3600)
        )
        log.info(f"Scheduled cleanup every {interval_hours} hours.")

    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
    if services.cache is not None:
        await services.cache.stop_background_cleanup()
    await store.stop()
    await services.aclose()


def create_app(services: AddonServices) -> web.Application:
    """Builds the addon web application around `services`."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICES_KEY] = services
    StreamHandlers(services).register(app)
    app.on_response_prepare.append(_add_cors_headers)
    app.cleanup_ctx.append(_lifecycle)
    return app


def run_server(services: AddonServices) -> None:
    """Serves the addon until interrupted."""
    config = services.config
    log.info(
        f"[bold green]Addon listening on {config.host}:{config.port}, "
        f"manifest at {config.public_url}/manifest.json[/bold green]"
    )
    web.run_app(
        create_app(services),
        host=config.host,
        port=config.port,
        print=None,
    )
