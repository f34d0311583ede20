"""Typed exceptions for the relay.

Every failure the relay can surface has its own class so that the interaction
router can map it to a deterministic private reply and the CLI can decide
whether the process must stop.

Fatal at startup:
    - :class:`ConfigurationError`
    - :class:`LedgerLoadError`
    - :class:`GatewayConnectionError` with ``fatal=True``

Recovered locally (user receives a private reply):
    - :class:`ValidationError`
    - :class:`PublishError`
    - :class:`PersistenceError`
    - :class:`Unauthorized`
    - :class:`NotFound`
    - :class:`IdentityResolutionError`
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base exception for all relay failures."""


class ConfigurationError(RelayError):
    """One or more required configuration values are missing or invalid.

    Args:
        missing: Names of the configuration keys that were not provided.
    """

    def __init__(self, missing: list[str] | None = None, message: str | None = None) -> None:
        self.missing = list(missing or [])
        if message is None:
            message = "Missing required configuration: " + ", ".join(self.missing)
        super().__init__(message)


class ValidationError(RelayError):
    """A submitted draft was rejected before any id was allocated.

    Attributes:
        reason: Stable short reason, one of ``"too many line breaks"``,
            ``"too long"`` or ``"empty"``.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PublishError(RelayError):
    """The anonymous post could not be delivered.

    The id allocated for the submission is burned and never reused.
    """

    def __init__(self, message: str, *, message_id: int | None = None) -> None:
        super().__init__(message)
        self.message_id = message_id


class PersistenceError(RelayError):
    """Writing the ledger to durable storage failed.

    Args:
        operation: ``"allocate"`` or ``"record"``.
        message_id: The id involved in the failed write.
        cause: Underlying filesystem or encoding error.
    """

    def __init__(
        self,
        operation: str,
        message_id: int | None = None,
        *,
        cause: Exception | None = None,
    ) -> None:
        message = f"ledger.{operation} failed"
        if message_id is not None:
            message = f"{message} for message {message_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation
        self.message_id = message_id
        self.cause = cause


class LedgerLoadError(RelayError):
    """The ledger file exists but could not be read or parsed."""


class Unauthorized(RelayError):
    """The requester lacks the moderator capability required for disclosure."""


class NotFound(RelayError):
    """No recorded ledger entry exists for the requested id."""

    def __init__(self, message_id: int) -> None:
        super().__init__(f"message {message_id} not found")
        self.message_id = message_id


class IdentityResolutionError(RelayError):
    """The ledger entry exists but the author's identity could not be fetched."""

    def __init__(self, message_id: int, *, cause: Exception | None = None) -> None:
        super().__init__(f"could not resolve author of message {message_id}")
        self.message_id = message_id
        self.cause = cause


class GatewayConnectionError(RelayError):
    """The chat platform connection failed.

    Attributes:
        fatal: ``True`` when the failure indicates misconfiguration (bad
            credentials or disallowed privileged intents) and the process
            must exit.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal
