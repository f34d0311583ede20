"""Ledger package: durable record of anonymous messages and their authors.

Public surface
--------------
- :class:`LedgerStore`: owns the id counter and the id → entry mapping.
- :class:`LedgerState`: the persisted value (counter plus entries).
- :class:`LedgerEntry`: one recorded message.

Usage example
-------------
::

    from anon_relay.ledger import LedgerStore

    store = LedgerStore(config.ledger.absolute_path)
    store.load()
    entry = store.get(12)

Design notes
------------
- The mapping is stored in clear; secrecy relies on file access control and
  on the moderator-only disclosure command.
- Ids are never reused.  An id burned by a failed publish stays a gap.
"""

from anon_relay.ledger.store import LedgerEntry, LedgerState, LedgerStore

__all__ = [
    "LedgerEntry",
    "LedgerState",
    "LedgerStore",
]
