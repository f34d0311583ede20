"""
FastAPI liveness probe for the relay.

The probe runs inside the relay's own event loop (``uvicorn.Server.serve()``
as a task next to the bot), so it reports on the live process rather than on
a sidecar.
"""

import contextlib
import logging

import uvicorn
from fastapi import FastAPI

from anon_relay import __version__
from anon_relay.api.routes import health
from anon_relay.api.status import RelayStatus

logger = logging.getLogger(__name__)


class ProbeServer(uvicorn.Server):
    """uvicorn server that leaves SIGTERM/SIGINT to the relay runtime."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def create_app(status: RelayStatus) -> FastAPI:
    """Build the probe application around a live :class:`RelayStatus`."""
    app = FastAPI(
        title="Anonymous Relay",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.relay_status = status
    app.include_router(health.router)
    return app


def build_server(app: FastAPI, host: str, port: int, log_level: str = "info") -> ProbeServer:
    """Create (but do not start) the probe server."""
    server_config = uvicorn.Config(app, host=host, port=port, log_level=log_level.lower())
    logger.info("health: probe configured on %s:%d", host, port)
    return ProbeServer(server_config)
