"""
Relay process runtime.

Wires the components together and runs them in one event loop:

    LedgerStore ──► SubmissionPipeline ──┐
         │                               ├──► InteractionRouter ◄── RelayBot (gateway)
         └──────► DisclosureService ─────┘
    RelayStatus ──► liveness probe (uvicorn)
    heartbeat task

Startup order: configuration check, ledger load, probe and heartbeat, then the
gateway connection.  The entry point is refreshed by the bot once it is ready.
SIGTERM and SIGINT close the gateway connection, which ends :func:`serve`.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import UTC, datetime

import discord

from anon_relay.api.server import build_server, create_app
from anon_relay.api.status import RelayStatus
from anon_relay.bot import DiscordIdentityResolver, RelayBot
from anon_relay.config import RelayConfig, require_complete
from anon_relay.core import DisclosureService, InteractionRouter, SubmissionPipeline
from anon_relay.errors import GatewayConnectionError
from anon_relay.ledger import LedgerStore
from anon_relay.publish import WebhookPublisher

logger = logging.getLogger(__name__)

# Extra time allowed on top of the HTTP timeout before the pipeline gives up
# on a publish (connection setup, retries inside the client).
PUBLISH_GRACE_SECONDS = 5.0


async def heartbeat(interval: float) -> None:
    """Log a liveness line every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        logger.info("relay alive: %s", datetime.now(UTC).isoformat())


async def start_gateway(bot: RelayBot, token: str) -> None:
    """Connect and run until the bot is closed.

    Raises:
        GatewayConnectionError: ``fatal=True`` for a rejected token or
            privileged intents that are not enabled for the application.
    """
    try:
        await bot.start(token)
    except discord.PrivilegedIntentsRequired as exc:
        raise GatewayConnectionError(
            "Privileged intents are not enabled for this application "
            "(enable the Server Members intent in the developer portal)",
            fatal=True,
        ) from exc
    except discord.LoginFailure as exc:
        raise GatewayConnectionError(f"Login failed: {exc}", fatal=True) from exc


async def serve(cfg: RelayConfig) -> None:
    """Run the relay until the gateway connection is closed.

    Raises:
        ConfigurationError: Required settings are missing.
        LedgerLoadError: The ledger file exists but is unreadable.
        PersistenceError: A new ledger file could not be created.
        GatewayConnectionError: Fatal connection failure.
    """
    require_complete(cfg)

    store = LedgerStore(cfg.ledger.absolute_path)
    store.load()

    bot = RelayBot(guild_id=cfg.discord.guild_id, channel_id=cfg.discord.channel_id)
    status = RelayStatus(ledger=store, gateway_connected=lambda: bot.gateway_connected)

    async with WebhookPublisher(
        cfg.publish.webhook_url, timeout=cfg.publish.timeout_seconds
    ) as publisher:
        pipeline = SubmissionPipeline(
            store,
            publisher,
            anonymous_name=cfg.publish.anonymous_name,
            refresh_entry_point=bot.refresh_entry_point,
            publish_timeout=cfg.publish.timeout_seconds + PUBLISH_GRACE_SECONDS,
        )
        disclosure = DisclosureService(store, DiscordIdentityResolver(bot))
        bot.attach_router(InteractionRouter(pipeline, disclosure))

        background: list[asyncio.Task] = []
        probe = None
        if cfg.health.enabled:
            probe = build_server(
                create_app(status), cfg.health.host, cfg.health.port, cfg.logging.level
            )
            background.append(asyncio.create_task(probe.serve(), name="health-probe"))
        if cfg.logging.heartbeat_seconds > 0:
            background.append(
                asyncio.create_task(heartbeat(cfg.logging.heartbeat_seconds), name="heartbeat")
            )

        _install_signal_handlers(bot)

        try:
            await start_gateway(bot, cfg.discord.bot_token)
        finally:
            logger.info("relay: shutting down")
            if probe is not None:
                probe.should_exit = True
            for task in background:
                if task.get_name() == "heartbeat":
                    task.cancel()
            await asyncio.gather(*background, return_exceptions=True)
            if not bot.is_closed():
                await bot.close()


def _install_signal_handlers(bot: RelayBot) -> set[asyncio.Task]:
    """Close the bot on SIGTERM/SIGINT; returns the set holding pending close tasks."""
    loop = asyncio.get_running_loop()
    closing: set[asyncio.Task] = set()

    def _on_signal(signame: str) -> None:
        logger.info("relay: %s received, closing gateway connection", signame)
        task = loop.create_task(bot.close())
        closing.add(task)
        task.add_done_callback(closing.discard)

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            pass
    return closing
