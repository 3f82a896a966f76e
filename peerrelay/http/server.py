"""
HTTP/WebSocket server for the signaling relay.

One WebSocket endpoint per topology (``/one-to-one``, ``/one-to-many``,
``/many-to-many``), plus ``/health`` and ``/stats``.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.responses import PlainTextResponse

from .. import __version__
from ..config import RelayConfig
from ..signaling.coordinator import SessionCoordinator
from ..signaling.types import Topology
from .websocket import WebSocketTransport

logger = logging.getLogger(__name__)


def create_app(config: Optional[RelayConfig] = None,
               coordinator: Optional[SessionCoordinator] = None) -> FastAPI:
    """
    Create the relay application.

    Args:
        config: Relay configuration (defaults if None)
        coordinator: Coordinator to serve (a new one is created if None)

    Returns:
        FastAPI app; the coordinator is available as ``app.state.coordinator``
    """
    config = config or RelayConfig()
    coordinator = coordinator or SessionCoordinator(config)

    app = FastAPI(title="peerrelay", version=__version__)
    app.state.config = config
    app.state.coordinator = coordinator

    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "OK"

    @app.get("/stats")
    async def stats() -> dict:
        return coordinator.get_stats()

    for topology in Topology:
        app.add_api_websocket_route(
            topology.path, _endpoint(coordinator, topology), name=topology.value
        )

    return app


def _endpoint(coordinator: SessionCoordinator, topology: Topology):
    async def endpoint(websocket: WebSocket):
        await websocket.accept()
        transport = WebSocketTransport(websocket)
        logger.debug(f"Accepted {topology.value} connection from {transport.client}")
        await coordinator.handle(transport, topology)

    endpoint.__name__ = f"{topology.name.lower()}_endpoint"
    return endpoint


def run(config: Optional[RelayConfig] = None) -> None:
    """
    Serve the relay until interrupted.

    Args:
        config: Relay configuration (bind address, limits, keep-alive)
    """
    config = config or RelayConfig()
    app = create_app(config)

    logger.info(f"Signaling relay listening on ws://{config.bind}")
    for topology in Topology:
        logger.info(f"  {topology.value:13s} ws://{config.bind}{topology.path}")

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level,
        ws_ping_interval=config.ws_ping_interval or None,
        ws_ping_timeout=config.ws_ping_timeout or None,
        ws_max_size=config.max_frame_bytes * 2,
    )
