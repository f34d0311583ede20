"""Anonymous publish channel."""

from anon_relay.publish.webhook import WebhookPublisher

__all__ = ["WebhookPublisher"]
