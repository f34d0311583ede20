"""Discord adapter (discord.py)."""

from anon_relay.bot.client import (
    DiscordIdentityResolver,
    DiscordInvitationChannel,
    RelayBot,
    event_from_interaction,
)

__all__ = [
    "DiscordIdentityResolver",
    "DiscordInvitationChannel",
    "RelayBot",
    "event_from_interaction",
]
