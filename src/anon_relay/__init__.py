"""Anonymous Relay: anonymous posting for Discord communities.

Members submit text through a button in a public channel; the relay posts it
under a numbered anonymous name and keeps a private ledger so that a
moderator can later disclose who wrote a given post.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("anon_relay")
except PackageNotFoundError:
    __version__ = "0.1.0"
