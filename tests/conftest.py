"""
Shared pytest fixtures for the relay test suite.

This module provides fixtures that are automatically available to all test files:
- A fresh ledger file in a temporary directory
- In-memory fakes for the platform collaborators (publisher, channel, identities)
- Fully wired pipeline, disclosure service and router

No fixture talks to the network; the webhook publisher has its own respx-based
tests in ``test_publish``.
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from anon_relay.config import use_test_ledger
from anon_relay.core import (
    DisclosureService,
    EntryPointManager,
    InteractionRouter,
    SubmissionPipeline,
)
from anon_relay.ledger import LedgerStore
from tests.fakes import (
    FIXED_NOW,
    RELAY_USER_ID,
    FakeChannel,
    FakeIdentities,
    FakePublisher,
)

# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture
def ledger_path(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Path of a not-yet-existing ledger file in a temporary directory.

    The config singleton points at it for the duration of the test.
    """
    path = tmp_path / "data" / "ledger.json"
    with use_test_ledger(path):
        yield path


@pytest.fixture
def store(ledger_path: Path) -> LedgerStore:
    """A loaded, empty ledger store backed by ``ledger_path``."""
    ledger = LedgerStore(ledger_path)
    ledger.load()
    return ledger


# ============================================================================
# COLLABORATOR FIXTURES
# ============================================================================


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def identities() -> FakeIdentities:
    return FakeIdentities()


# ============================================================================
# COMPONENT FIXTURES
# ============================================================================


@pytest.fixture
def entry_points() -> EntryPointManager:
    return EntryPointManager(RELAY_USER_ID)


@pytest.fixture
def pipeline(
    store: LedgerStore,
    publisher: FakePublisher,
    channel: FakeChannel,
    entry_points: EntryPointManager,
) -> SubmissionPipeline:
    """Pipeline wired to the fake publisher, refreshing the fake channel."""
    return SubmissionPipeline(
        store,
        publisher,
        anonymous_name="Anonymous",
        refresh_entry_point=lambda: entry_points.refresh(channel),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def disclosure(store: LedgerStore, identities: FakeIdentities) -> DisclosureService:
    return DisclosureService(store, identities)


@pytest.fixture
def router(pipeline: SubmissionPipeline, disclosure: DisclosureService) -> InteractionRouter:
    return InteractionRouter(pipeline, disclosure)
