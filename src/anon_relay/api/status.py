"""Process status shared between the bot and the liveness probe."""

from __future__ import annotations

import resource
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from anon_relay.ledger import LedgerStore


@dataclass
class RelayStatus:
    """
    Live view of the running relay, read by ``GET /health``.

    Attributes:
        ledger: The ledger store; its file is checked for accessibility.
        gateway_connected: Returns ``True`` while the platform connection is
            ready.  Defaults to "never connected".
        started_at: ``time.monotonic()`` at process start.
    """

    ledger: LedgerStore
    gateway_connected: Callable[[], bool] = lambda: False
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    @staticmethod
    def max_rss_kb() -> int:
        """Peak resident set size of this process (kilobytes on Linux)."""
        return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
