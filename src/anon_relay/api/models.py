"""
Pydantic response models for the liveness probe.
"""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """
    Health check payload.

    Attributes:
        status: "healthy" when the platform connection is ready, else "unhealthy"
        gateway_connected: Whether the platform connection is ready
        uptime_seconds: Seconds since process start
        max_rss_kb: Peak resident memory of the process
        ledger_file_accessible: Whether the ledger file can be read
        last_message_id: Last allocated anonymous message id
        version: Installed package version
        error: Present only when the ledger file is not accessible
    """

    status: str
    gateway_connected: bool
    uptime_seconds: float
    max_rss_kb: int
    ledger_file_accessible: bool
    last_message_id: int
    version: str
    error: str | None = None
