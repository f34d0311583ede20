"""Disclosure ledger store.

Overview
--------
The ledger maps every anonymous message id to the sanitized content, the
creation time and the author reference recorded at submission time.  It is the
only place the relay keeps the link between an anonymous post and its author,
and the only shared mutable state in the process.

The :class:`LedgerStore` owns one :class:`LedgerState` value and the file it is
persisted to.  The submission pipeline is its single writer; the disclosure
service only reads it.

Id allocation
-------------
Ids are positive integers allocated by :meth:`LedgerStore.allocate`, strictly
increasing from 1.  An id is allocated *before* the anonymous post is
published, and the advanced counter is persisted immediately so that an id
whose publish fails is never handed out again, even across restarts.  Such
burned ids leave permanent gaps, reported by :meth:`LedgerStore.gaps`.

Storage
-------
A single UTF-8 JSON document, rewritten in full after every mutation::

    {
      "lastMessageId": 3,
      "messages": {
        "1": {"content": "hello", "timestamp": "2026-10-19T09:12:44.120511+00:00",
              "authorId": "190283746512345678"},
        "3": {"content": "...", "timestamp": "...", "authorId": "..."}
      }
    }

Writes go to a temporary file in the same directory which is flushed,
fsync'd and atomically renamed over the ledger, so a crash mid-write leaves
the previous document intact.

Failure semantics
-----------------
:exc:`~anon_relay.errors.PersistenceError` is raised when a write fails.  A failed
:meth:`~LedgerStore.allocate` still consumes its id (the counter is never
moved back); a failed :meth:`~LedgerStore.record` removes its entry again, so
the id becomes a gap.  A ledger file that exists but cannot be parsed raises
:exc:`~anon_relay.errors.LedgerLoadError` and is never overwritten.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from anon_relay.errors import LedgerLoadError, PersistenceError

logger = logging.getLogger(__name__)


# ── Data model ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LedgerEntry:
    """One recorded anonymous message.

    Attributes:
        message_id: Sequential id shown in the anonymous display name.
        content: Sanitized text exactly as published.
        timestamp: Allocation instant (UTC).
        author_ref: Opaque platform id of the submitting user.  Only ever
            exposed through the disclosure service.
    """

    message_id: int
    content: str
    timestamp: datetime
    author_ref: str

    def to_record(self) -> dict:
        return {
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "authorId": self.author_ref,
        }

    @classmethod
    def from_record(cls, message_id: int, record: dict) -> LedgerEntry:
        return cls(
            message_id=message_id,
            content=str(record["content"]),
            timestamp=datetime.fromisoformat(str(record["timestamp"])),
            author_ref=str(record["authorId"]),
        )


@dataclass
class LedgerState:
    """Counter plus entries; the value persisted to disk."""

    last_id: int = 0
    entries: dict[int, LedgerEntry] = field(default_factory=dict)

    def to_document(self) -> dict:
        return {
            "lastMessageId": self.last_id,
            "messages": {
                str(message_id): entry.to_record()
                for message_id, entry in sorted(self.entries.items())
            },
        }

    @classmethod
    def from_document(cls, document: object) -> LedgerState:
        """Build a state from a parsed ledger document.

        Raises:
            ValueError: If the document does not have the expected shape.
        """
        if not isinstance(document, dict):
            raise ValueError("ledger document must be a JSON object")

        last_id = document.get("lastMessageId", 0)
        if not isinstance(last_id, int) or isinstance(last_id, bool) or last_id < 0:
            raise ValueError(f"lastMessageId must be a non-negative integer, got {last_id!r}")

        messages = document.get("messages", {})
        if not isinstance(messages, dict):
            raise ValueError("messages must be a JSON object")

        entries: dict[int, LedgerEntry] = {}
        for key, record in messages.items():
            message_id = int(key)
            if message_id <= 0:
                raise ValueError(f"message id must be positive, got {key!r}")
            if not isinstance(record, dict):
                raise ValueError(f"message {key} must be a JSON object")
            try:
                entries[message_id] = LedgerEntry.from_record(message_id, record)
            except KeyError as exc:
                raise ValueError(f"message {key} is missing field {exc}") from exc

        if entries and max(entries) > last_id:
            # A counter behind its own entries would hand out a recorded id
            # again.  Move it forward rather than refuse to start.
            logger.warning(
                "ledger: lastMessageId %d is behind highest entry %d; advancing counter",
                last_id,
                max(entries),
            )
            last_id = max(entries)

        return cls(last_id=last_id, entries=entries)


# ── Store ─────────────────────────────────────────────────────────────────────


class LedgerStore:
    """Durable id → entry mapping with a monotonic id counter.

    The store performs no locking of its own.  Callers that can interleave
    (the asyncio submission handlers) serialize access to :meth:`allocate`
    and :meth:`record`; see :class:`~anon_relay.core.submission.SubmissionPipeline`.

    Example::

        store = LedgerStore(Path("data/ledger.json"))
        store.load()
        message_id = store.allocate()
        store.record(message_id, "hello", datetime.now(UTC), "190283746512345678")
        assert store.get(message_id).content == "hello"
    """

    def __init__(self, path: Path, state: LedgerState | None = None) -> None:
        self._path = Path(path)
        self._state = state if state is not None else LedgerState()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def last_id(self) -> int:
        return self._state.last_id

    # ── Persistence ───────────────────────────────────────────────────────────

    def load(self) -> LedgerState:
        """Read the ledger file into memory.

        An absent file initializes an empty ledger and writes it immediately so
        that a misconfigured path fails at startup rather than on the first
        submission.

        Returns:
            The loaded state (also held by the store).

        Raises:
            LedgerLoadError: The file exists but is unreadable or malformed.
            PersistenceError: The file was absent and could not be created.
        """
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except FileNotFoundError:
            logger.warning("ledger: %s not found, creating an empty ledger", self._path)
            self._state = LedgerState()
            self.save()
            return self._state
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LedgerLoadError(f"Cannot read ledger at {self._path}: {exc}") from exc

        try:
            self._state = LedgerState.from_document(document)
        except (TypeError, ValueError) as exc:
            raise LedgerLoadError(f"Malformed ledger at {self._path}: {exc}") from exc

        logger.info(
            "ledger: loaded %d entries from %s (last id %d)",
            len(self._state.entries),
            self._path,
            self._state.last_id,
        )
        return self._state

    def save(self) -> None:
        """Rewrite the whole ledger document.

        Raises:
            PersistenceError: If serialization or any filesystem step fails.
        """
        self._persist("save")

    def _persist(self, operation: str, message_id: int | None = None) -> None:
        try:
            text = json.dumps(self._state.to_document(), ensure_ascii=False, indent=2)
            _replace_file(self._path, text)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("ledger: %s failed for %s: %s", operation, self._path, exc)
            raise PersistenceError(operation, message_id, cause=exc) from exc
        logger.debug("ledger: %s persisted to %s", operation, self._path.name)

    # ── Mutation ──────────────────────────────────────────────────────────────

    def allocate(self) -> int:
        """Reserve the next id and persist the advanced counter.

        The id is consumed even if persisting fails; it is never reused.

        Returns:
            The newly allocated id.

        Raises:
            PersistenceError: The counter could not be written.
        """
        self._state.last_id += 1
        message_id = self._state.last_id
        self._persist("allocate", message_id)
        return message_id

    def record(
        self,
        message_id: int,
        content: str,
        timestamp: datetime,
        author_ref: str,
    ) -> LedgerEntry:
        """Insert (or overwrite) the entry for an allocated id and persist.

        Raises:
            ValueError: ``message_id`` was never allocated.
            PersistenceError: The write failed.  The in-memory entry is
                restored to what it was before the call, so an unrecorded id
                stays undisclosable.
        """
        if message_id <= 0 or message_id > self._state.last_id:
            raise ValueError(f"record: id {message_id} has not been allocated")

        entry = LedgerEntry(
            message_id=message_id,
            content=content,
            timestamp=timestamp,
            author_ref=str(author_ref),
        )
        previous = self._state.entries.get(message_id)
        self._state.entries[message_id] = entry
        try:
            self._persist("record", message_id)
        except PersistenceError:
            if previous is None:
                del self._state.entries[message_id]
            else:
                self._state.entries[message_id] = previous
            raise
        return entry

    # ── Queries ───────────────────────────────────────────────────────────────

    def get(self, message_id: int) -> LedgerEntry | None:
        """Return the recorded entry for ``message_id``, or ``None``."""
        return self._state.entries.get(message_id)

    def gaps(self) -> list[int]:
        """Ids that were allocated but never recorded (burned ids)."""
        recorded = self._state.entries
        return [i for i in range(1, self._state.last_id + 1) if i not in recorded]

    def is_accessible(self) -> bool:
        """True if the ledger file exists and is readable."""
        return os.access(self._path, os.R_OK)


# ── Internal helpers ──────────────────────────────────────────────────────────


def _replace_file(path: Path, text: str) -> None:
    """Atomically replace ``path`` with ``text``.

    The temporary file lives in the destination directory so that
    ``os.replace`` stays on one filesystem.  It is removed on every failure
    path.

    Raises:
        OSError: If the directory creation, write, fsync or rename fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
