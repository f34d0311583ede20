"""
Anonymous publishing through a channel webhook.

A webhook post carries its own display name and avatar, so the published
message has no link to the member who wrote it.  This module wraps the single
``POST <webhook_url>?wait=true`` call.

The publisher is designed to be used as an async context manager so the
underlying connection pool is closed on every exit path:

    async with WebhookPublisher(url, timeout=10.0) as publisher:
        await publisher.publish("hello", "12 Anonymous")

Any transport error, timeout or non-2xx response raises
:exc:`~anon_relay.errors.PublishError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from anon_relay.errors import PublishError

logger = logging.getLogger(__name__)

# Webhook display names longer than this are rejected by the platform.
MAX_DISPLAY_NAME_CHARS = 80

# "everyone" is deliberately absent: content is sanitized already, and the
# platform refuses to expand a broadcast mention that is not listed here.
ALLOWED_MENTIONS = {"parse": ["users", "roles"]}


@dataclass
class WebhookPublisher:
    """
    Async client for one webhook URL.

    Attributes:
        webhook_url: Full webhook URL including id and token.
        timeout: Per-request timeout in seconds.
    """

    webhook_url: str
    timeout: float = 10.0

    _http_client: httpx.AsyncClient | None = field(default=None, repr=False)

    async def __aenter__(self) -> WebhookPublisher:
        self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """
        Get the HTTP client, ensuring it's been initialized.

        Raises:
            RuntimeError: If accessed outside of async context manager.
        """
        if self._http_client is None:
            raise RuntimeError(
                "WebhookPublisher must be used as an async context manager. "
                "Use 'async with WebhookPublisher(url) as publisher:'"
            )
        return self._http_client

    async def publish(self, content: str, display_name: str) -> None:
        """
        Post ``content`` under ``display_name``.

        Args:
            content: Sanitized message text.
            display_name: Name shown instead of the author, e.g. ``"12 Anonymous"``.

        Raises:
            PublishError: The post was not accepted.
        """
        payload = {
            "content": content,
            "username": display_name[:MAX_DISPLAY_NAME_CHARS],
            "allowed_mentions": ALLOWED_MENTIONS,
        }
        try:
            response = await self.http_client.post(
                self.webhook_url, params={"wait": "true"}, json=payload
            )
        except httpx.TimeoutException as e:
            raise PublishError(f"Webhook request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise PublishError(f"Cannot reach webhook: {e}") from e

        if response.is_error:
            detail = _error_detail(response)
            logger.error(
                "webhook: post rejected with status %d: %s", response.status_code, detail
            )
            raise PublishError(f"Webhook returned {response.status_code}: {detail}")

        logger.debug("webhook: posted as %r", display_name)


def _error_detail(response: httpx.Response) -> str:
    """Best-effort error message from a platform error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or "no detail"
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return str(data)[:200]
