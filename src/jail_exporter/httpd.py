"""HTTP transport for the exporter.

Routes:
- GET /                 index page linking to the telemetry path
- GET <telemetry_path>  one collection cycle, rendered for the scraper

Every scrape runs a fresh reconciliation so destroyed jails are reaped on
read. Optional HTTP Basic Authentication sits in front of both routes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

from jail_exporter import ExporterError
from jail_exporter.auth import BasicAuthConfig, parse_basic_authorization
from jail_exporter.config import DEFAULT_LISTEN_ADDRESS, DEFAULT_TELEMETRY_PATH
from jail_exporter.engine import ReconciliationEngine
from jail_exporter.exposition import encode
from jail_exporter.validators import split_socket_addr

logger = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", ReconciliationEngine)
INDEX_PAGE_KEY = web.AppKey("index_page", str)

AUTH_REALM = "jail_exporter"

INDEX_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
    <head>
        <meta charset="UTF-8">
        <title>Jail Exporter</title>
    </head>
    <body>
        <h1>Jail Exporter</h1>
        <p><a href="{telemetry_path}">Metrics</a></p>
    </body>
</html>"""

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class BindError(ExporterError):
    """Raised when the server cannot bind to its listen address."""

    pass


def render_index_page(telemetry_path: str) -> str:
    return INDEX_TEMPLATE.format(telemetry_path=telemetry_path)


def basic_auth_middleware(config: BasicAuthConfig):
    """Build a middleware rejecting requests without valid credentials."""

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        credentials = parse_basic_authorization(request.headers.get("Authorization", ""))

        if credentials is not None:
            username, password = credentials
            loop = asyncio.get_running_loop()
            # bcrypt is deliberately slow, keep it off the event loop.
            valid = await loop.run_in_executor(None, config.verify, username, password)
            if valid:
                return await handler(request)
            logger.warning(f"Failed basic auth attempt for user {username!r} from {request.remote}")

        return web.Response(
            status=401,
            text="401 Unauthorized",
            headers={"WWW-Authenticate": f'Basic realm="{AUTH_REALM}"'},
        )

    return middleware


async def handle_index(request: web.Request) -> web.Response:
    """Index page, useful for people connecting with a browser."""
    return web.Response(text=request.app[INDEX_PAGE_KEY], content_type="text/html", charset="utf-8")


async def handle_metrics(request: web.Request) -> web.Response:
    """Run a collection cycle and return the exposition."""
    engine = request.app[ENGINE_KEY]
    loop = asyncio.get_running_loop()

    try:
        result = await loop.run_in_executor(None, engine.reconcile)
    except ExporterError as e:
        logger.error(f"Error collecting metrics: {e}")
        return web.Response(
            status=500,
            text=f"error collecting metrics: {e}",
            content_type="text/plain",
            charset="utf-8",
        )

    body, content_type = encode(result.snapshot, request.headers.get("Accept"))
    return web.Response(body=body, headers={"Content-Type": content_type})


def create_app(
    engine: ReconciliationEngine,
    telemetry_path: str = DEFAULT_TELEMETRY_PATH,
    auth_config: BasicAuthConfig | None = None,
) -> web.Application:
    """Create the aiohttp application.

    Args:
        engine: Engine run on every scrape.
        telemetry_path: Path serving the metrics.
        auth_config: Basic auth users. Authentication is only enabled when
            at least one user is configured.
    """
    middlewares = []
    if auth_config is not None and auth_config.has_users():
        logger.debug("Enabling HTTP basic authentication")
        middlewares.append(basic_auth_middleware(auth_config))

    app = web.Application(middlewares=middlewares)
    app[ENGINE_KEY] = engine
    app[INDEX_PAGE_KEY] = render_index_page(telemetry_path)

    app.router.add_get("/", handle_index)
    app.router.add_get(telemetry_path, handle_metrics)

    return app


async def run_server(
    engine: ReconciliationEngine,
    listen_address: str = DEFAULT_LISTEN_ADDRESS,
    telemetry_path: str = DEFAULT_TELEMETRY_PATH,
    auth_config: BasicAuthConfig | None = None,
) -> None:
    """Serve metrics until cancelled.

    Raises:
        BindError: If the listen address cannot be bound.
    """
    app = create_app(engine, telemetry_path, auth_config)
    host, port = split_socket_addr(listen_address)

    runner = web.AppRunner(app)
    await runner.setup()

    logger.debug(f"Attempting to bind to: {listen_address}")
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError as e:
        await runner.cleanup()
        raise BindError(f"failed to bind to {listen_address}: {e.strerror}") from e

    logger.info(f"Starting HTTP server on {listen_address}")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def serve(
    engine: ReconciliationEngine,
    listen_address: str = DEFAULT_LISTEN_ADDRESS,
    telemetry_path: str = DEFAULT_TELEMETRY_PATH,
    auth_config: BasicAuthConfig | None = None,
) -> None:
    """Blocking entry point for the HTTP server."""
    try:
        asyncio.run(run_server(engine, listen_address, telemetry_path, auth_config))
    except KeyboardInterrupt:
        logger.info("Shutting down")
