"""Submission pipeline: draft → anonymous post → ledger entry.

``SubmissionPipeline.submit()`` is the only write path into the ledger.  For
one draft it runs, in order:

1. **Validate and sanitize**: at most one line break, at most
   :data:`MAX_CONTENT_CHARS` characters, not blank; broadcast mentions
   (``@everyone`` / ``@here``) are neutralized.
2. **Allocate** an id from the ledger.  The counter is persisted before
   anything is published.
3. **Publish** the sanitized content under ``"<id> <anonymous name>"``.
4. **Record** the entry in the ledger.
5. **Refresh** the entry point (the "send anonymous message" button).

Failure windows
---------------
=========================  ==================  ===========================
Failure                    Id                  Outcome
=========================  ==================  ===========================
validation (step 1)        none allocated      ``ValidationError`` raised
allocate write (step 2)    burned              ``PersistenceError`` raised
publish (step 3)           burned              ``PublishError`` raised,
                                               wrapping any publisher error
record write (step 4)      used, unrecorded    result with ``recorded=False``
refresh (step 5)           unaffected          logged only
=========================  ==================  ===========================

A record failure after a successful publish is the one case where a public
side effect outlives a local failure: the post is visible but cannot be
disclosed.  It is returned as a degraded result instead of raised, because
from the submitter's point of view the message *was* sent.

Steps 2–4 run under an ``asyncio.Lock`` so that overlapping submissions are
allocated, published and recorded strictly one at a time.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from anon_relay.errors import PersistenceError, PublishError, ValidationError
from anon_relay.ledger import LedgerStore

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 200
MAX_LINE_BREAKS = 1

# "@everyone" and "@here" notify a whole audience.  A hyphen after the "@"
# keeps the text readable while the platform no longer treats it as a mention.
_BROADCAST_MENTION = re.compile(r"@(everyone|here)")


class AnonymousPublisher(Protocol):
    """Posts text with no link to the submitting account."""

    async def publish(self, content: str, display_name: str) -> None: ...


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a submission whose content was published.

    Attributes:
        message_id: The id shown in the anonymous display name.
        content: The sanitized content that was published.
        recorded: ``False`` when the ledger write failed after publishing.
        error: The persistence failure when ``recorded`` is ``False``.
    """

    message_id: int
    content: str
    recorded: bool = True
    error: PersistenceError | None = None


def sanitize_mentions(text: str) -> str:
    """Neutralize broadcast mentions, leaving every other character untouched."""
    return _BROADCAST_MENTION.sub(r"@-\1", text)


def validate_draft(draft: str) -> str:
    """Validate a raw draft and return its sanitized content.

    The length limit applies to the sanitized text, which is what gets
    published and recorded.

    Raises:
        ValidationError: ``"too many line breaks"``, ``"too long"`` or ``"empty"``.
    """
    if draft.count("\n") > MAX_LINE_BREAKS:
        raise ValidationError("too many line breaks")
    if not draft.strip():
        raise ValidationError("empty")
    content = sanitize_mentions(draft)
    if len(content) > MAX_CONTENT_CHARS:
        raise ValidationError("too long")
    return content


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SubmissionPipeline:
    """Turns a member's draft into a published, recorded anonymous message.

    Args:
        ledger: The ledger store this pipeline exclusively writes to.
        publisher: Anonymous publish channel.
        anonymous_name: Suffix of the display name, e.g. ``"12 Anonymous"``.
        refresh_entry_point: Coroutine function called after every publish to
            replace the invitation button.  Its failures are logged only.
        publish_timeout: Upper bound in seconds on one publish call; a call
            that exceeds it counts as a publish failure.
        clock: Source of entry timestamps (UTC).
    """

    def __init__(
        self,
        ledger: LedgerStore,
        publisher: AnonymousPublisher,
        *,
        anonymous_name: str = "Anonymous",
        refresh_entry_point: Callable[[], Awaitable[object]] | None = None,
        publish_timeout: float | None = 15.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ledger = ledger
        self._publisher = publisher
        self._anonymous_name = anonymous_name
        self._refresh_entry_point = refresh_entry_point
        self._publish_timeout = publish_timeout
        self._clock = clock
        self._lock = asyncio.Lock()

    def display_name(self, message_id: int) -> str:
        return f"{message_id} {self._anonymous_name}"

    async def submit(self, draft: str, author_ref: str) -> SubmissionResult:
        """Run the full pipeline for one draft.

        Args:
            draft: Raw text from the submission form.
            author_ref: Platform id of the submitting member.

        Returns:
            SubmissionResult for any submission that reached the public
            channel, including the degraded ``recorded=False`` case.

        Raises:
            ValidationError: Draft rejected; no id consumed.
            PersistenceError: The id counter could not be persisted; nothing
                was published.
            PublishError: The anonymous post failed; the id is burned.
        """
        content = validate_draft(draft)

        async with self._lock:
            try:
                message_id = self._ledger.allocate()
            except PersistenceError:
                logger.error(
                    "submission: id %d burned, counter could not be persisted",
                    self._ledger.last_id,
                )
                raise
            timestamp = self._clock()

            try:
                await self._publish(content, message_id)
            except PublishError as exc:
                exc.message_id = message_id
                logger.warning("submission: id %d burned, publish failed: %s", message_id, exc)
                raise

            try:
                self._ledger.record(message_id, content, timestamp, author_ref)
                result = SubmissionResult(message_id=message_id, content=content)
            except PersistenceError as exc:
                logger.error(
                    "submission: message %d is public but unrecorded; "
                    "it cannot be disclosed",
                    message_id,
                    exc_info=True,
                )
                result = SubmissionResult(
                    message_id=message_id, content=content, recorded=False, error=exc
                )

        logger.info("submission: published message %d", message_id)
        await self._refresh()
        return result

    async def _publish(self, content: str, message_id: int) -> None:
        publish = self._publisher.publish(content, self.display_name(message_id))
        try:
            if self._publish_timeout is None:
                await publish
            else:
                await asyncio.wait_for(publish, timeout=self._publish_timeout)
        except TimeoutError as exc:
            raise PublishError(
                f"publish timed out after {self._publish_timeout}s", message_id=message_id
            ) from exc
        except PublishError:
            raise
        except Exception as exc:
            # Any other publisher failure still burns the id.
            raise PublishError(f"publish failed: {exc!r}", message_id=message_id) from exc

    async def _refresh(self) -> None:
        if self._refresh_entry_point is None:
            return
        try:
            await self._refresh_entry_point()
        except Exception:
            # A stale button is cosmetic; the next refresh cleans it up.
            logger.exception("submission: entry point refresh failed")
