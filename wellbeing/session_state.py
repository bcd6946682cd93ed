# wellbeing/session_state.py

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from wellbeing.chat_timeline import ChatTimeline
from wellbeing.models import EntryKind, JournalEntry, MoodEntry


class IdentityStatus(str, Enum):
    SUSPENDED = "suspended"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingDeletion:
    kind: EntryKind
    entry_id: str


@dataclass
class SessionState:
    """
    Everything the three views observe, in one place.

    Owners:
      identity / identity_status / loading -> IdentityResolver
      mood_view / journal_view / chat      -> CollectionProjector (chat pending overlay: coordinator)
      chat_in_flight                       -> MessageExchangeCoordinator
      pending_deletion                     -> EntryLifecycleManager
    The *_input fields are the form values the UI binds to.
    """
    identity: Optional[str] = None
    identity_status: IdentityStatus = IdentityStatus.SUSPENDED
    loading: bool = True

    mood_view: List[MoodEntry] = field(default_factory=list)
    journal_view: List[JournalEntry] = field(default_factory=list)
    chat: ChatTimeline = field(default_factory=ChatTimeline)

    chat_in_flight: bool = False
    pending_deletion: Optional[PendingDeletion] = None

    mood_input: str = ""
    journal_input: str = ""
    chat_input: str = ""

    @property
    def ready(self) -> bool:
        return self.identity is not None and self.identity_status == IdentityStatus.READY

    def set_identity(self, identity: Optional[str], *, missing: IdentityStatus = IdentityStatus.FAILED) -> None:
        if identity:
            self.identity = identity
            self.identity_status = IdentityStatus.READY
        else:
            self.identity = None
            self.identity_status = missing

    def clear_views(self) -> None:
        self.mood_view = []
        self.journal_view = []
        self.chat.reset()
        self.pending_deletion = None
