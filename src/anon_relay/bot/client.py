"""
Discord adapter for the relay.

This module is the only place that knows about discord.py.  It:

- keeps the gateway connection (``RelayBot``, a ``discord.Client``)
- registers the ``/reveal`` slash command
- translates every interaction into an event from
  :mod:`anon_relay.core.events` and sends back the router's reply
- implements the core collaborator protocols on top of discord.py:
  :class:`DiscordInvitationChannel` (entry point) and
  :class:`DiscordIdentityResolver` (disclosure)

Interaction flow:

    button "anonymous_message_button"  -> EntryTriggered  -> ShowForm -> modal
    modal  "anonymous_message_modal"   -> FormSubmitted   -> PrivateReply
    /reveal message_id:<int>           -> CommandInvoked  -> PrivateReply

Form submissions and ``/reveal`` are deferred before dispatch so that a slow
webhook or channel refresh cannot exceed the platform's three-second
response deadline; their reply is sent as an ephemeral follow-up.
"""

import logging

import discord
from discord import app_commands

from anon_relay.core.disclosure import Identity, Requester
from anon_relay.core.entry_point import (
    INVITATION_CUSTOM_ID,
    ChannelMessage,
    EntryPointManager,
    RefreshReport,
)
from anon_relay.core.events import (
    REVEAL_COMMAND,
    CommandInvoked,
    EntryTriggered,
    FormSubmitted,
    InteractionEvent,
    InteractionRouter,
    Replies,
    Reply,
    ShowForm,
)
from anon_relay.core.submission import MAX_CONTENT_CHARS

logger = logging.getLogger(__name__)

FORM_CUSTOM_ID = "anonymous_message_modal"
FORM_INPUT_CUSTOM_ID = "message_input"
FORM_TIMEOUT_SECONDS = 900

BUTTON_LABEL = "Send anonymous message"
FORM_TITLE = "Anonymous message"
FORM_INPUT_LABEL = f"Message ({MAX_CONTENT_CHARS} characters, one line break max)"
FORM_FAILED = "Could not open the message form."


# =============================================================================
# UI COMPONENTS
# =============================================================================


class InvitationView(discord.ui.View):
    """The single button members press to start a submission.

    Clicks are handled in :meth:`RelayBot.on_interaction`, not by a button
    callback, so the button keeps working across restarts.
    """

    def __init__(self) -> None:
        super().__init__(timeout=None)
        self.add_item(
            discord.ui.Button(
                label=BUTTON_LABEL,
                style=discord.ButtonStyle.primary,
                custom_id=INVITATION_CUSTOM_ID,
            )
        )


class DraftForm(discord.ui.Modal):
    """Draft form: one paragraph input limited to the relay's maximum length."""

    def __init__(self) -> None:
        super().__init__(title=FORM_TITLE, custom_id=FORM_CUSTOM_ID, timeout=FORM_TIMEOUT_SECONDS)
        self.add_item(
            discord.ui.TextInput(
                label=FORM_INPUT_LABEL,
                style=discord.TextStyle.paragraph,
                custom_id=FORM_INPUT_CUSTOM_ID,
                max_length=MAX_CONTENT_CHARS,
                required=True,
            )
        )


# =============================================================================
# TRANSLATION HELPERS
# =============================================================================


def component_custom_ids(message: discord.Message) -> tuple[str, ...]:
    """All component custom ids on a message, in row order."""
    custom_ids = []
    for row in message.components:
        for child in getattr(row, "children", ()):
            custom_id = getattr(child, "custom_id", None)
            if custom_id:
                custom_ids.append(custom_id)
    return tuple(custom_ids)


def to_channel_message(message: discord.Message) -> ChannelMessage:
    return ChannelMessage(
        message_id=message.id,
        author_id=message.author.id,
        custom_ids=component_custom_ids(message),
    )


def form_value(data: dict, custom_id: str) -> str | None:
    """Extract a text input value from raw modal-submit interaction data."""
    for row in data.get("components", []):
        # Action rows nest "components"; label containers nest one "component".
        children = row.get("components") or [row.get("component") or {}]
        for component in children:
            if component.get("custom_id") == custom_id:
                return component.get("value", "")
    return None


def requester_from(interaction: discord.Interaction) -> Requester:
    """Capability as granted by the guild's permission system."""
    permissions = getattr(interaction.user, "guild_permissions", None)
    return Requester(
        user_id=interaction.user.id,
        can_manage_guild=bool(permissions is not None and permissions.manage_guild),
    )


def event_from_interaction(interaction: discord.Interaction) -> InteractionEvent | None:
    """Translate a component or modal interaction; ``None`` if not ours."""
    data = interaction.data or {}
    custom_id = data.get("custom_id")

    if interaction.type == discord.InteractionType.component:
        if custom_id == INVITATION_CUSTOM_ID:
            return EntryTriggered(user_id=interaction.user.id)
        return None

    if interaction.type == discord.InteractionType.modal_submit:
        if custom_id == FORM_CUSTOM_ID:
            text = form_value(data, FORM_INPUT_CUSTOM_ID) or ""
            return FormSubmitted(user_id=interaction.user.id, text=text)
        return None

    return None


# =============================================================================
# COLLABORATOR IMPLEMENTATIONS
# =============================================================================


class DiscordInvitationChannel:
    """:class:`~anon_relay.core.entry_point.InvitationChannel` over a text channel."""

    def __init__(self, channel: discord.TextChannel) -> None:
        self._channel = channel

    async def recent_messages(self, limit: int) -> list[ChannelMessage]:
        return [to_channel_message(m) async for m in self._channel.history(limit=limit)]

    async def delete_message(self, message_id: int) -> None:
        await self._channel.get_partial_message(message_id).delete()

    async def post_invitation(self) -> int:
        message = await self._channel.send(view=InvitationView())
        return message.id


class DiscordIdentityResolver:
    """:class:`~anon_relay.core.disclosure.IdentityResolver` via the users API."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def resolve(self, author_ref: str) -> Identity:
        user = await self._client.fetch_user(int(author_ref))
        return Identity(user_id=str(user.id), display=str(user))


# =============================================================================
# CLIENT
# =============================================================================


def relay_intents() -> discord.Intents:
    """Guilds and guild messages, plus the privileged members intent."""
    intents = discord.Intents.default()
    intents.members = True
    return intents


class RelayBot(discord.Client):
    """
    Gateway client that feeds interactions to an :class:`InteractionRouter`.

    The router is attached after construction (:meth:`attach_router`) because
    the submission pipeline it wraps calls back into
    :meth:`refresh_entry_point`.

    Args:
        guild_id: Guild the ``/reveal`` command is registered on.
        channel_id: Public channel holding the invitation button.
    """

    def __init__(self, *, guild_id: int, channel_id: int, **options) -> None:
        options.setdefault("intents", relay_intents())
        super().__init__(**options)
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.tree = app_commands.CommandTree(self)
        self.router: InteractionRouter | None = None
        self._bootstrapped = False

    def attach_router(self, router: InteractionRouter) -> None:
        self.router = router

    @property
    def gateway_connected(self) -> bool:
        return self.is_ready() and not self.is_closed()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def setup_hook(self) -> None:
        @self.tree.command(
            name=REVEAL_COMMAND,
            description="Reveal the sender of an anonymous message (moderators only)",
        )
        @app_commands.describe(message_id="Number of the anonymous message to reveal")
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.guild_only()
        async def reveal(interaction: discord.Interaction, message_id: int) -> None:
            event = CommandInvoked(
                name=REVEAL_COMMAND,
                requester=requester_from(interaction),
                options={"message_id": message_id},
            )
            await self._defer(interaction)
            await self._dispatch(interaction, event)

    async def on_ready(self) -> None:
        logger.info("gateway: logged in as %s", self.user)
        # on_ready fires again after every resumed session; bootstrap once.
        if self._bootstrapped:
            return
        self._bootstrapped = True
        await self.register_commands()
        logger.info("gateway: placing the invitation after startup")
        await self.refresh_entry_point()

    async def register_commands(self) -> None:
        """Register slash commands on the guild, or globally if it is not cached."""
        try:
            guild = self.get_guild(self.guild_id)
            if guild is not None:
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info("gateway: slash commands registered on guild %d", guild.id)
            else:
                logger.warning(
                    "gateway: guild %d not found, registering commands globally", self.guild_id
                )
                await self.tree.sync()
                logger.info("gateway: slash commands registered globally")
        except discord.HTTPException:
            logger.exception("gateway: slash command registration failed")

    async def refresh_entry_point(self) -> RefreshReport | None:
        """Replace stale invitations in the public channel with one new one."""
        if self.user is None:
            logger.warning("entry point: refresh skipped, not logged in")
            return None
        channel = await self._resolve_channel()
        if channel is None:
            return None
        manager = EntryPointManager(self.user.id)
        return await manager.refresh(DiscordInvitationChannel(channel))

    async def _resolve_channel(self) -> discord.TextChannel | None:
        channel = self.get_channel(self.channel_id)
        if channel is None:
            try:
                channel = await self.fetch_channel(self.channel_id)
            except discord.HTTPException as exc:
                logger.error("gateway: channel %d not found: %s", self.channel_id, exc)
                return None
        if not isinstance(channel, discord.TextChannel):
            logger.error("gateway: channel %d is not a text channel", self.channel_id)
            return None
        return channel

    # -------------------------------------------------------------------------
    # Interactions
    # -------------------------------------------------------------------------

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        event = event_from_interaction(interaction)
        if event is None:
            return
        if isinstance(event, FormSubmitted):
            await self._defer(interaction)
        await self._dispatch(interaction, event)

    async def _defer(self, interaction: discord.Interaction) -> None:
        try:
            await interaction.response.defer(ephemeral=True, thinking=True)
        except discord.HTTPException:
            logger.exception("gateway: could not defer interaction %d", interaction.id)

    async def _dispatch(self, interaction: discord.Interaction, event: InteractionEvent) -> None:
        if self.router is None:
            raise RuntimeError("RelayBot.attach_router() must be called before connecting")
        try:
            reply = await self.router.dispatch(event)
        except Exception:
            logger.exception("gateway: handling %s failed", type(event).__name__)
            await self._send_text(interaction, Replies.SEND_FAILED)
            return
        await self._send_reply(interaction, reply)

    async def _send_reply(self, interaction: discord.Interaction, reply: Reply) -> None:
        if isinstance(reply, ShowForm):
            try:
                await interaction.response.send_modal(DraftForm())
            except discord.HTTPException:
                logger.exception("gateway: could not open the message form")
                await self._send_text(interaction, FORM_FAILED)
            return
        await self._send_text(interaction, reply.text)

    async def _send_text(self, interaction: discord.Interaction, text: str) -> None:
        try:
            if interaction.response.is_done():
                await interaction.followup.send(text, ephemeral=True)
            else:
                await interaction.response.send_message(text, ephemeral=True)
        except discord.HTTPException:
            logger.exception("gateway: could not reply to interaction %d", interaction.id)
