"""Tests for interaction dispatch and the replies members see."""

import pytest

from anon_relay.core import (
    CommandInvoked,
    Disclosure,
    EntryTriggered,
    FormSubmitted,
    Identity,
    InteractionRouter,
    PrivateReply,
    Replies,
    Requester,
    ShowForm,
)
from anon_relay.core.events import format_disclosure
from anon_relay.errors import PersistenceError
from tests.fakes import FIXED_NOW, MEMBER_ID

MODERATOR = Requester(user_id=1, can_manage_guild=True)
MEMBER = Requester(user_id=2)


def reveal(message_id, requester=MODERATOR) -> CommandInvoked:
    return CommandInvoked(name="reveal", requester=requester, options={"message_id": message_id})


class TestEntryAndForm:
    @pytest.mark.asyncio
    async def test_button_opens_form(self, router: InteractionRouter):
        assert await router.dispatch(EntryTriggered(user_id=MEMBER_ID)) == ShowForm()

    @pytest.mark.asyncio
    async def test_accepted_draft(self, router, publisher):
        event = FormSubmitted(user_id=MEMBER_ID, text="hello @everyone\nworld")
        reply = await router.dispatch(event)

        assert reply == PrivateReply(Replies.SENT)
        assert publisher.posts == [("hello @-everyone\nworld", "1 Anonymous")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("a\nb\nc", Replies.TOO_MANY_LINE_BREAKS),
            ("x" * 201, Replies.TOO_LONG),
            ("   ", Replies.EMPTY),
        ],
    )
    async def test_rejected_draft(self, router, publisher, store, text, expected):
        reply = await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text=text))

        assert reply == PrivateReply(expected)
        assert publisher.posts == []
        assert store.last_id == 0

    @pytest.mark.asyncio
    async def test_publish_failure(self, router, publisher):
        publisher.fail = True

        reply = await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text="hello"))

        assert reply == PrivateReply(Replies.SEND_FAILED)

    @pytest.mark.asyncio
    async def test_unexpected_publisher_error_reports_send_failed(self, router, publisher, store):
        async def _broken(content, display_name):
            raise RuntimeError("invalid webhook url")

        publisher.publish = _broken

        reply = await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text="hello"))

        assert reply == PrivateReply(Replies.SEND_FAILED)
        assert store.gaps() == [1]

    @pytest.mark.asyncio
    async def test_unrecorded_message_reports_internal_error(self, router, store, monkeypatch):
        def _failing_record(message_id, *args):
            raise PersistenceError("record", message_id)

        monkeypatch.setattr(store, "record", _failing_record)

        reply = await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text="hello"))

        assert reply == PrivateReply(Replies.SENT_UNRECORDED)

    @pytest.mark.asyncio
    async def test_unknown_event_type_is_a_programming_error(self, router):
        with pytest.raises(TypeError):
            await router.dispatch("not an event")


class TestReveal:
    @pytest.mark.asyncio
    async def test_moderator_gets_disclosure(self, router):
        await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text="hello"))

        reply = await router.dispatch(reveal(1))

        assert reply.text.splitlines() == [
            "📩 Message #: 1",
            f"👤 Sender: member5678 (ID: {MEMBER_ID})",
            "📜 Content: hello",
            f"🕒 Sent at: {FIXED_NOW.isoformat()}",
        ]

    @pytest.mark.asyncio
    async def test_member_is_refused(self, router, identities):
        await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text="hello"))

        reply = await router.dispatch(reveal(1, requester=MEMBER))

        assert reply == PrivateReply(Replies.MODERATORS_ONLY)
        assert identities.calls == []

    @pytest.mark.asyncio
    async def test_unknown_id(self, router):
        assert await router.dispatch(reveal(42)) == PrivateReply("Message #42 does not exist.")

    @pytest.mark.asyncio
    async def test_identity_failure(self, router, identities):
        await router.dispatch(FormSubmitted(user_id=MEMBER_ID, text="hello"))
        identities.fail = True

        assert await router.dispatch(reveal(1)) == PrivateReply(Replies.IDENTITY_FAILED)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [None, "1", True])
    async def test_missing_or_invalid_message_id(self, router, bad):
        assert await router.dispatch(reveal(bad)) == PrivateReply(Replies.MISSING_MESSAGE_ID)

    @pytest.mark.asyncio
    async def test_missing_message_id_for_member_still_says_moderators_only(self, router):
        reply = await router.dispatch(reveal(None, requester=MEMBER))

        assert reply == PrivateReply(Replies.MODERATORS_ONLY)

    @pytest.mark.asyncio
    async def test_unknown_command(self, router):
        reply = await router.dispatch(CommandInvoked(name="purge", requester=MODERATOR))

        assert reply == PrivateReply(Replies.UNKNOWN_COMMAND)


def test_format_disclosure_includes_every_field():
    text = format_disclosure(
        Disclosure(
            message_id=7,
            author=Identity(user_id="99", display="someone"),
            content="line one\nline two",
            timestamp=FIXED_NOW,
        )
    )

    assert "📩 Message #: 7" in text
    assert "👤 Sender: someone (ID: 99)" in text
    assert "📜 Content: line one\nline two" in text
    assert text.endswith("🕒 Sent at: 2026-10-19T09:30:00+00:00")
