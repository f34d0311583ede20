"""Health and root endpoints.

Provides the root ``/`` endpoint (plain-text liveness) and the ``/health``
endpoint (connection, uptime, memory and ledger-file status).

``/health`` answers 500 when the ledger file is not accessible, since a relay
that cannot record submissions should be restarted by its supervisor.  The
platform connection state is reported but does not change the status code:
the gateway reconnects on its own.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from anon_relay import __version__
from anon_relay.api.models import HealthResponse
from anon_relay.api.status import RelayStatus

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
async def root():
    """Plain-text liveness check."""
    return "Bot is running"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint."""
    status: RelayStatus = request.app.state.relay_status
    connected = status.gateway_connected()
    accessible = status.ledger.is_accessible()

    body = HealthResponse(
        status="healthy" if connected else "unhealthy",
        gateway_connected=connected,
        uptime_seconds=round(status.uptime_seconds, 3),
        max_rss_kb=status.max_rss_kb(),
        ledger_file_accessible=accessible,
        last_message_id=status.ledger.last_id,
        version=__version__,
        error=None if accessible else f"ledger file not accessible: {status.ledger.path.name}",
    )
    return JSONResponse(
        status_code=200 if accessible else 500,
        content=body.model_dump(exclude_none=True),
    )
