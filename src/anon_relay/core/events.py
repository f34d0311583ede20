"""
Interaction events and their single dispatch point.

Every interaction the platform delivers is translated by the adapter into one
of three event variants and handed to :meth:`InteractionRouter.dispatch`:

    EntryTriggered   -> a member pressed the invitation button
    FormSubmitted    -> a member submitted the draft form
    CommandInvoked   -> a slash command was used (only ``reveal`` exists)

The router answers with a :data:`Reply`: either :class:`ShowForm` (the
adapter opens the draft form) or :class:`PrivateReply` (text visible only to
the member who triggered the interaction).  Every failure a member can cause
ends in a ``PrivateReply``; nothing here raises to the adapter except
programming errors.

=============================================================================
USAGE
=============================================================================

    router = InteractionRouter(pipeline, disclosure)

    reply = await router.dispatch(FormSubmitted(user_id=42, text="hello"))
    # PrivateReply(text="Your anonymous message was sent.")

=============================================================================
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from anon_relay.core.disclosure import Disclosure, DisclosureService, Requester
from anon_relay.core.submission import MAX_CONTENT_CHARS, SubmissionPipeline
from anon_relay.errors import (
    IdentityResolutionError,
    NotFound,
    PersistenceError,
    PublishError,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

REVEAL_COMMAND = "reveal"


# =============================================================================
# EVENT VARIANTS
# =============================================================================


@dataclass(frozen=True)
class EntryTriggered:
    user_id: int


@dataclass(frozen=True)
class FormSubmitted:
    user_id: int
    text: str


@dataclass(frozen=True)
class CommandInvoked:
    name: str
    requester: Requester
    options: dict[str, object] = field(default_factory=dict)


InteractionEvent = EntryTriggered | FormSubmitted | CommandInvoked


# =============================================================================
# REPLIES
# =============================================================================


@dataclass(frozen=True)
class ShowForm:
    """Open the draft form for the member."""


@dataclass(frozen=True)
class PrivateReply:
    text: str


Reply = ShowForm | PrivateReply


class Replies:
    """
    Member-facing reply texts.

    Kept in one place so the adapter and tests agree on wording.
    """

    SENT = "Your anonymous message was sent."
    SENT_UNRECORDED = "Your message was sent, but an internal error occurred."
    SEND_FAILED = "Sending the message failed."
    TOO_MANY_LINE_BREAKS = "Only one line break is allowed."
    TOO_LONG = f"Messages are limited to {MAX_CONTENT_CHARS} characters."
    EMPTY = "The message is empty."
    MODERATORS_ONLY = "This command is for moderators only."
    IDENTITY_FAILED = "Could not retrieve the sender's information."
    UNKNOWN_COMMAND = "Unknown command."
    MISSING_MESSAGE_ID = "A message number is required."

    @staticmethod
    def not_found(message_id: int) -> str:
        return f"Message #{message_id} does not exist."


_VALIDATION_REPLIES = {
    "too many line breaks": Replies.TOO_MANY_LINE_BREAKS,
    "too long": Replies.TOO_LONG,
    "empty": Replies.EMPTY,
}


def format_disclosure(disclosure: Disclosure) -> str:
    """Render a disclosure as the private reply sent to the moderator."""
    return "\n".join(
        [
            f"📩 Message #: {disclosure.message_id}",
            f"👤 Sender: {disclosure.author.display} (ID: {disclosure.author.user_id})",
            f"📜 Content: {disclosure.content}",
            f"🕒 Sent at: {disclosure.timestamp.isoformat()}",
        ]
    )


# =============================================================================
# ROUTER
# =============================================================================


class InteractionRouter:
    """Routes each event variant to the component that owns it.

    Args:
        pipeline: Handles :class:`FormSubmitted`.
        disclosure: Handles the ``reveal`` :class:`CommandInvoked`.
    """

    def __init__(self, pipeline: SubmissionPipeline, disclosure: DisclosureService) -> None:
        self._pipeline = pipeline
        self._disclosure = disclosure
        self._handlers: dict[type, Callable[..., Awaitable[Reply]]] = {
            EntryTriggered: self._on_entry_triggered,
            FormSubmitted: self._on_form_submitted,
            CommandInvoked: self._on_command_invoked,
        }
        self._commands: dict[str, Callable[[CommandInvoked], Awaitable[Reply]]] = {
            REVEAL_COMMAND: self._reveal,
        }

    async def dispatch(self, event: InteractionEvent) -> Reply:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"unsupported interaction event: {event!r}")
        return await handler(event)

    async def _on_entry_triggered(self, event: EntryTriggered) -> Reply:
        return ShowForm()

    async def _on_form_submitted(self, event: FormSubmitted) -> Reply:
        try:
            result = await self._pipeline.submit(event.text, str(event.user_id))
        except ValidationError as exc:
            return PrivateReply(_VALIDATION_REPLIES.get(exc.reason, Replies.SEND_FAILED))
        except (PublishError, PersistenceError):
            # Nothing was published; the pipeline has already logged the cause.
            return PrivateReply(Replies.SEND_FAILED)

        if not result.recorded:
            return PrivateReply(Replies.SENT_UNRECORDED)
        return PrivateReply(Replies.SENT)

    async def _on_command_invoked(self, event: CommandInvoked) -> Reply:
        command = self._commands.get(event.name)
        if command is None:
            logger.warning("router: unknown command %r", event.name)
            return PrivateReply(Replies.UNKNOWN_COMMAND)
        return await command(event)

    async def _reveal(self, event: CommandInvoked) -> Reply:
        message_id = event.options.get("message_id")
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            if not event.requester.can_manage_guild:
                return PrivateReply(Replies.MODERATORS_ONLY)
            return PrivateReply(Replies.MISSING_MESSAGE_ID)

        try:
            disclosure = await self._disclosure.reveal(message_id, event.requester)
        except Unauthorized:
            return PrivateReply(Replies.MODERATORS_ONLY)
        except NotFound:
            return PrivateReply(Replies.not_found(message_id))
        except IdentityResolutionError:
            return PrivateReply(Replies.IDENTITY_FAILED)
        return PrivateReply(format_disclosure(disclosure))
