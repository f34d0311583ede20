"""Platform-independent relay logic: submission, entry point, disclosure, dispatch."""

from anon_relay.core.disclosure import (
    Disclosure,
    DisclosureService,
    Identity,
    IdentityResolver,
    Requester,
)
from anon_relay.core.entry_point import (
    INVITATION_CUSTOM_ID,
    ChannelMessage,
    EntryPointManager,
    InvitationChannel,
    RefreshReport,
)
from anon_relay.core.events import (
    CommandInvoked,
    EntryTriggered,
    FormSubmitted,
    InteractionRouter,
    PrivateReply,
    Replies,
    ShowForm,
)
from anon_relay.core.submission import (
    AnonymousPublisher,
    SubmissionPipeline,
    SubmissionResult,
    sanitize_mentions,
    validate_draft,
)

__all__ = [
    "AnonymousPublisher",
    "ChannelMessage",
    "CommandInvoked",
    "Disclosure",
    "DisclosureService",
    "EntryPointManager",
    "EntryTriggered",
    "FormSubmitted",
    "INVITATION_CUSTOM_ID",
    "Identity",
    "IdentityResolver",
    "InteractionRouter",
    "InvitationChannel",
    "PrivateReply",
    "RefreshReport",
    "Replies",
    "Requester",
    "ShowForm",
    "SubmissionPipeline",
    "SubmissionResult",
    "sanitize_mentions",
    "validate_draft",
]
