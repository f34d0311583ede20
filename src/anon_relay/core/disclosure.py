"""Disclosure service: moderator-only lookup of an anonymous message's author."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from anon_relay.errors import IdentityResolutionError, NotFound, Unauthorized
from anon_relay.ledger import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requester:
    """Who is asking, with the capability the platform granted them.

    ``can_manage_guild`` is computed by the platform's permission system;
    the relay only consumes it.
    """

    user_id: int
    can_manage_guild: bool = False


@dataclass(frozen=True)
class Identity:
    """User-facing identity of an author."""

    user_id: str
    display: str


class IdentityResolver(Protocol):
    async def resolve(self, author_ref: str) -> Identity: ...


@dataclass(frozen=True)
class Disclosure:
    message_id: int
    author: Identity
    content: str
    timestamp: datetime


class DisclosureService:
    """Translates an anonymous message id into its author.

    Read-only with respect to the ledger.  Disclosures are not recorded.
    """

    def __init__(self, ledger: LedgerStore, identities: IdentityResolver) -> None:
        self._ledger = ledger
        self._identities = identities

    async def reveal(self, message_id: int, requester: Requester) -> Disclosure:
        """Disclose the author of ``message_id``.

        Raises:
            Unauthorized: Requester lacks manage-guild.  Checked before the
                ledger is touched, so nothing about the id leaks.
            NotFound: The id was never allocated or was never recorded.
            IdentityResolutionError: The entry exists but the identity
                backend failed.
        """
        if not requester.can_manage_guild:
            logger.warning(
                "disclosure: refused unauthorized request from user %d", requester.user_id
            )
            raise Unauthorized("manage-guild permission required")

        entry = self._ledger.get(message_id)
        if entry is None:
            raise NotFound(message_id)

        try:
            author = await self._identities.resolve(entry.author_ref)
        except Exception as exc:
            logger.error(
                "disclosure: identity lookup failed for message %d: %s", message_id, exc
            )
            raise IdentityResolutionError(message_id, cause=exc) from exc

        logger.info("disclosure: message %d disclosed to user %d", message_id, requester.user_id)
        return Disclosure(
            message_id=message_id,
            author=author,
            content=entry.content,
            timestamp=entry.timestamp,
        )
