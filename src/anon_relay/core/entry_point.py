"""Entry-point manager: keeps one "send anonymous message" button in the channel.

The button is not tracked anywhere; it is found by scanning.  A refresh:

1. Reads the most recent :data:`SCAN_WINDOW` messages of the channel.
2. Deletes every one authored by the relay that carries the invitation
   button.  A failed delete is logged and the rest are still attempted.
3. Posts exactly one new invitation.

Buttons older than the scan window are not found.  This is best-effort
cleanup, not a correctness guarantee: two overlapping refreshes can leave a
duplicate button, which the next refresh removes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

INVITATION_CUSTOM_ID = "anonymous_message_button"
SCAN_WINDOW = 100


@dataclass(frozen=True)
class ChannelMessage:
    """The parts of a channel message the scan needs."""

    message_id: int
    author_id: int
    custom_ids: tuple[str, ...] = ()


class InvitationChannel(Protocol):
    """Platform operations on the public channel."""

    async def recent_messages(self, limit: int) -> list[ChannelMessage]: ...

    async def delete_message(self, message_id: int) -> None: ...

    async def post_invitation(self) -> int: ...


@dataclass
class RefreshReport:
    removed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    posted: int | None = None


class EntryPointManager:
    """Replaces stale invitations with a single fresh one.

    Args:
        relay_user_id: Platform id of the relay's own account; only its
            messages are ever deleted.
        custom_id: Component id that marks an invitation.
        scan_window: Number of recent messages inspected per refresh.
    """

    def __init__(
        self,
        relay_user_id: int,
        *,
        custom_id: str = INVITATION_CUSTOM_ID,
        scan_window: int = SCAN_WINDOW,
    ) -> None:
        self.relay_user_id = relay_user_id
        self.custom_id = custom_id
        self.scan_window = scan_window

    def is_invitation(self, message: ChannelMessage) -> bool:
        return message.author_id == self.relay_user_id and self.custom_id in message.custom_ids

    async def refresh(self, channel: InvitationChannel) -> RefreshReport:
        """Remove stale invitations and post one new invitation.

        Errors while scanning are logged and the new invitation is still
        posted.  Errors while posting propagate.
        """
        report = RefreshReport()

        try:
            recent = await channel.recent_messages(self.scan_window)
        except Exception:
            logger.exception("entry point: could not read recent channel messages")
            recent = []

        for message in recent:
            if not self.is_invitation(message):
                continue
            try:
                await channel.delete_message(message.message_id)
            except Exception as exc:
                logger.warning(
                    "entry point: could not delete stale invitation %d: %s",
                    message.message_id,
                    exc,
                )
                report.failed.append(message.message_id)
            else:
                logger.info("entry point: removed stale invitation %d", message.message_id)
                report.removed.append(message.message_id)

        report.posted = await channel.post_invitation()
        logger.info(
            "entry point: posted invitation %s (removed %d, failed %d)",
            report.posted,
            len(report.removed),
            len(report.failed),
        )
        return report
