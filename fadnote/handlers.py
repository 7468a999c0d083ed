"""
HTTP routes for the note service (aiohttp).

    POST /n/{id}   store an encrypted note under a caller-chosen id
    POST /n        store an encrypted note under a generated id
    GET  /n/{id}   return the note and delete it (one-time read)
    GET  /health   storage liveness

The decryption key travels in the URL fragment (``#key``), which browsers
never send, so it never reaches these handlers.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from .conf import NoteConfig
from .exceptions import FadnoteError, InvalidTtl, NotFound, TooLarge
from .notes import NoteManager
from .storage import create_storage
from .storage.abstract import NoteStorage
from .sweeper import ExpirySweeper

logger = logging.getLogger("fadnote.http")

TTL_HEADER = "X-Note-TTL"

CONFIG_KEY = web.AppKey("fadnote_config", NoteConfig)
MANAGER_KEY = web.AppKey("fadnote_manager", NoteManager)
SWEEPER_KEY = web.AppKey("fadnote_sweeper", ExpirySweeper)


def _error(err: FadnoteError, **extra) -> web.Response:
    body = {"error": err.code, "message": err.message}
    body.update(extra)
    return web.json_response(body, status=err.status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except NotFound as err:
        return _error(err, hint="Notes are deleted after first view")
    except FadnoteError as err:
        return _error(err)
    except web.HTTPRequestEntityTooLarge:
        limit = request.app[CONFIG_KEY].max_payload_size
        return _error(TooLarge(f"Request body too large (max {limit} bytes)"))


def _ttl_from(request: web.Request) -> Optional[int]:
    """Read the retention hint from the request headers."""
    raw = request.headers.get(TTL_HEADER)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidTtl(f"{TTL_HEADER} must be an integer") from None


async def _store(request: web.Request, note_id: Optional[str]) -> web.Response:
    manager = request.app[MANAGER_KEY]
    ttl = _ttl_from(request)
    payload = await request.read()
    receipt = await manager.create(payload, ttl_seconds=ttl, note_id=note_id)
    return web.json_response(
        {"success": True, "id": receipt.id, "expiresIn": receipt.expires_in},
        status=201,
    )


async def create_note(request: web.Request) -> web.Response:
    return await _store(request, request.match_info["id"])


async def create_generated_note(request: web.Request) -> web.Response:
    return await _store(request, None)


async def consume_note(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    blob = await manager.consume(request.match_info["id"])
    return web.Response(
        body=blob,
        content_type="application/octet-stream",
        headers={"X-Note-Status": "deleted"},
    )


async def health(request: web.Request) -> web.Response:
    report = await request.app[MANAGER_KEY].health()
    storage = {"type": report.backend, "status": report.backend_status}
    if report.detail:
        storage["error"] = report.detail
    body = {
        "status": "ok" if report.ok else "error",
        "storage": storage,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return web.json_response(body, status=200 if report.ok else 503)


def setup_routes(app: web.Application) -> None:
    app.router.add_post("/n", create_generated_note)
    app.router.add_post("/n/{id}", create_note)
    app.router.add_get("/n/{id}", consume_note)
    app.router.add_get("/health", health)


async def _start_sweeper(app: web.Application) -> None:
    app[SWEEPER_KEY].start()


async def _shutdown(app: web.Application) -> None:
    logger.info("Shutting down note service")
    await app[SWEEPER_KEY].stop()
    await app[MANAGER_KEY].storage.close()


def create_app(
    config: Optional[NoteConfig] = None,
    storage: Optional[NoteStorage] = None,
) -> web.Application:
    """Wire configuration, storage, manager and sweeper into an application."""
    config = config or NoteConfig.from_env()
    if storage is None:
        storage = create_storage(config)
    # Oversized bodies stop at aiohttp; the manager enforces the exact limit.
    app = web.Application(
        client_max_size=config.max_payload_size + 1,
        middlewares=[error_middleware],
    )
    app[CONFIG_KEY] = config
    app[MANAGER_KEY] = NoteManager(
        storage,
        max_payload_size=config.max_payload_size,
        timeout=config.backend_timeout,
        max_ttl=config.max_ttl,
    )
    app[SWEEPER_KEY] = ExpirySweeper(storage, interval=config.sweep_interval)
    setup_routes(app)
    app.on_startup.append(_start_sweeper)
    app.on_cleanup.append(_shutdown)
    return app
