"""aiohttp application serving a functions project locally."""

import logging
from typing import Optional

from aiohttp import web

from core.config import RuntimeConfig
from core.discovery import FileSystemDiscovery
from core.function_loader import FunctionLoader
from core.interfaces import AssetResource, ResourceDiscovery, Visibility
from core.logging_utils import configure_json_logging
from core.scope import construct_global_scope, get_global_scope
from core.validators import get_logging_config
from server.http_handler import FunctionRouteHandler

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", RuntimeConfig)
DISCOVERY_KEY = web.AppKey("discovery", ResourceDiscovery)


def _asset_handler(asset: AssetResource):
    async def handle_asset(request: web.Request) -> web.FileResponse:
        return web.FileResponse(asset.path)

    return handle_asset


async def _init_scope(app: web.Application) -> None:
    """Build the global scope before the first request."""
    construct_global_scope(app[CONFIG_KEY], app[DISCOVERY_KEY])
    logger.info("Global scope initialized", extra={"url": app[CONFIG_KEY].url})


def create_app(
    config: RuntimeConfig, discovery: Optional[ResourceDiscovery] = None
) -> web.Application:
    """Create the application with one route per function and asset.

    Private functions and assets are not routed; they stay reachable through
    ``Runtime``. A function and an asset on the same route resolve to the
    function.
    """
    discovery = discovery or FileSystemDiscovery.from_config(config)
    loader = FunctionLoader(get_global_scope)

    app = web.Application()
    app[CONFIG_KEY] = config
    app[DISCOVERY_KEY] = discovery

    routes = set()
    for function in discovery.get_functions().values():
        if function.visibility is Visibility.PRIVATE:
            continue
        handler = FunctionRouteHandler(function, config, loader, discovery)
        app.router.add_route("*", function.route, handler.__call__)
        routes.add(function.route)
        logger.debug(f"Routed function {function.route} ({function.visibility.value})")

    assets = discovery.get_assets()
    for asset in assets.values():
        if asset.visibility is Visibility.PRIVATE:
            continue
        if asset.route in routes:
            logger.warning(f"Asset {asset.route} shadowed by a function on the same route")
            continue
        app.router.add_get(asset.route, _asset_handler(asset))
        routes.add(asset.route)

    index = assets.get("/index.html")
    if index is not None and index.visibility is not Visibility.PRIVATE and "/" not in routes:
        app.router.add_get("/", _asset_handler(index))

    app.on_startup.append(_init_scope)

    logger.info(
        f"Serving {len(routes)} routes from {config.base_dir}",
        extra={"url": config.url},
    )
    return app


def run_server(config: RuntimeConfig) -> None:
    """Configure logging and serve until interrupted."""
    logging_config = get_logging_config(config)
    configure_json_logging(
        level=logging_config["level"], pretty=logging_config["pretty"]
    )
    app = create_app(config)
    logger.info(f"Functions runtime listening on {config.url}")
    web.run_app(app, host=config.host, port=config.port, print=None)
