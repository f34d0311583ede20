"""
Tests for the Discord adapter's translation layer.

Interactions are stand-in namespaces carrying only the attributes the adapter
reads; no gateway connection is made.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import discord
import pytest

from anon_relay.bot import RelayBot, event_from_interaction
from anon_relay.bot.client import (
    FORM_CUSTOM_ID,
    FORM_INPUT_CUSTOM_ID,
    DraftForm,
    form_value,
    requester_from,
    to_channel_message,
)
from anon_relay.core import EntryTriggered, FormSubmitted, Replies
from anon_relay.core.entry_point import INVITATION_CUSTOM_ID
from tests.fakes import MEMBER_ID, RELAY_USER_ID


def modal_data(value: str, *, label_layout: bool = False) -> dict:
    """Raw modal-submit payload in either of the platform's two layouts."""
    text_input = {"type": 4, "custom_id": FORM_INPUT_CUSTOM_ID, "value": value}
    if label_layout:
        row = {"type": 18, "component": text_input}
    else:
        row = {"type": 1, "components": [text_input]}
    return {"custom_id": FORM_CUSTOM_ID, "components": [row]}


def make_interaction(interaction_type, data, *, manage_guild=False, response_done=False):
    return SimpleNamespace(
        id=77,
        type=interaction_type,
        data=data,
        user=SimpleNamespace(
            id=MEMBER_ID,
            guild_permissions=SimpleNamespace(manage_guild=manage_guild),
        ),
        response=SimpleNamespace(
            defer=AsyncMock(),
            send_modal=AsyncMock(),
            send_message=AsyncMock(),
            is_done=lambda: response_done,
        ),
        followup=SimpleNamespace(send=AsyncMock()),
    )


# ============================================================================
# TRANSLATION
# ============================================================================


class TestEventFromInteraction:
    def test_invitation_button(self):
        interaction = make_interaction(
            discord.InteractionType.component, {"custom_id": INVITATION_CUSTOM_ID}
        )

        assert event_from_interaction(interaction) == EntryTriggered(user_id=MEMBER_ID)

    def test_other_button_ignored(self):
        interaction = make_interaction(discord.InteractionType.component, {"custom_id": "poll"})

        assert event_from_interaction(interaction) is None

    @pytest.mark.parametrize("label_layout", [False, True])
    def test_form_submission(self, label_layout):
        interaction = make_interaction(
            discord.InteractionType.modal_submit,
            modal_data("hello\nworld", label_layout=label_layout),
        )

        assert event_from_interaction(interaction) == FormSubmitted(
            user_id=MEMBER_ID, text="hello\nworld"
        )

    def test_other_modal_ignored(self):
        interaction = make_interaction(
            discord.InteractionType.modal_submit, {"custom_id": "feedback", "components": []}
        )

        assert event_from_interaction(interaction) is None

    def test_slash_commands_left_to_command_tree(self):
        interaction = make_interaction(
            discord.InteractionType.application_command, {"name": "reveal"}
        )

        assert event_from_interaction(interaction) is None


def test_form_value_missing_input():
    assert form_value({"components": [{"type": 1, "components": []}]}, "message_input") is None


@pytest.mark.parametrize(("manage_guild", "expected"), [(True, True), (False, False)])
def test_requester_from_reads_guild_permissions(manage_guild, expected):
    interaction = make_interaction(None, {}, manage_guild=manage_guild)

    requester = requester_from(interaction)

    assert requester.user_id == MEMBER_ID
    assert requester.can_manage_guild is expected


def test_requester_without_guild_permissions_is_not_privileged():
    interaction = SimpleNamespace(user=SimpleNamespace(id=5))

    assert requester_from(interaction).can_manage_guild is False


def test_to_channel_message_collects_custom_ids():
    message = SimpleNamespace(
        id=10,
        author=SimpleNamespace(id=RELAY_USER_ID),
        components=[
            SimpleNamespace(
                children=[
                    SimpleNamespace(custom_id=INVITATION_CUSTOM_ID),
                    SimpleNamespace(custom_id=None),
                ]
            )
        ],
    )

    converted = to_channel_message(message)

    assert converted.message_id == 10
    assert converted.author_id == RELAY_USER_ID
    assert converted.custom_ids == (INVITATION_CUSTOM_ID,)


# ============================================================================
# REPLIES
# ============================================================================


@pytest.fixture
def bot(router):
    relay = RelayBot(guild_id=1, channel_id=2)
    relay.attach_router(router)
    return relay


class TestRelayBotReplies:
    @pytest.mark.asyncio
    async def test_button_opens_draft_form(self, bot):
        interaction = make_interaction(
            discord.InteractionType.component, {"custom_id": INVITATION_CUSTOM_ID}
        )

        await bot.on_interaction(interaction)

        interaction.response.defer.assert_not_awaited()
        (form,), _ = interaction.response.send_modal.await_args
        assert isinstance(form, DraftForm)

    @pytest.mark.asyncio
    async def test_form_submission_is_deferred_then_answered_privately(
        self, bot, publisher
    ):
        interaction = make_interaction(
            discord.InteractionType.modal_submit, modal_data("hi"), response_done=True
        )

        await bot.on_interaction(interaction)

        interaction.response.defer.assert_awaited_once_with(ephemeral=True, thinking=True)
        interaction.followup.send.assert_awaited_once_with(Replies.SENT, ephemeral=True)
        assert publisher.posts == [("hi", "1 Anonymous")]

    @pytest.mark.asyncio
    async def test_unhandled_error_still_answers_submitter(self, bot, router, monkeypatch):
        async def _crash(event):
            raise RuntimeError("boom")

        monkeypatch.setattr(router, "dispatch", _crash)
        interaction = make_interaction(
            discord.InteractionType.modal_submit, modal_data("hi"), response_done=True
        )

        await bot.on_interaction(interaction)

        interaction.followup.send.assert_awaited_once_with(Replies.SEND_FAILED, ephemeral=True)

    @pytest.mark.asyncio
    async def test_reply_without_defer_uses_initial_response(self, bot):
        interaction = make_interaction(None, {})

        await bot._send_text(interaction, "text")

        interaction.response.send_message.assert_awaited_once_with("text", ephemeral=True)

    @pytest.mark.asyncio
    async def test_unrelated_interaction_is_not_answered(self, bot):
        interaction = make_interaction(discord.InteractionType.component, {"custom_id": "x"})

        await bot.on_interaction(interaction)

        interaction.response.send_modal.assert_not_awaited()
        interaction.response.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_without_router_is_an_error(self):
        relay = RelayBot(guild_id=1, channel_id=2)
        interaction = make_interaction(
            discord.InteractionType.component, {"custom_id": INVITATION_CUSTOM_ID}
        )

        with pytest.raises(RuntimeError, match="attach_router"):
            await relay.on_interaction(interaction)

    @pytest.mark.asyncio
    async def test_not_connected_before_login(self, bot):
        assert bot.gateway_connected is False
        assert await bot.refresh_entry_point() is None
