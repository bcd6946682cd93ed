# wellbeing/entry_lifecycle.py

import logging
from typing import Optional

from wellbeing.base_utils import BaseUtils
from wellbeing.document_store import DocumentStore, StoreError
from wellbeing.models import (
    COLLECTION_FOR_KIND,
    JOURNAL_COLLECTION,
    MOOD_COLLECTION,
    EntryKind,
    Mood,
)
from wellbeing.session_state import PendingDeletion, SessionState

logger = logging.getLogger("wellbeing_hub")

DELETABLE_KINDS = (EntryKind.MOOD, EntryKind.JOURNAL)


class EntryLifecycleManager(BaseUtils):
    def __init__(self, store: Optional[DocumentStore], state: SessionState):
        self.store = store
        self.state = state

    def _ready(self) -> bool:
        return self.store is not None and self.state.ready

    # -----------------------
    # Create
    # -----------------------

    async def log_mood(self, mood: Optional[str] = None) -> Optional[str]:
        mood = self.state.mood_input if mood is None else mood
        if not mood or not self._ready():
            return None
        if mood not in Mood.labels():
            logger.info(f"log_mood(): unknown mood label {mood!r}")
            return None

        try:
            doc_id = await self.store.create(self.state.identity, MOOD_COLLECTION, {
                "mood": mood,
                "userId": self.state.identity,
            })
        except StoreError as e:
            logger.error(f"Error adding mood entry: {e}")
            return None

        self.state.mood_input = ""
        return doc_id

    async def save_journal(self, content: Optional[str] = None) -> Optional[str]:
        content = self.state.journal_input if content is None else content
        if not content or not content.strip() or not self._ready():
            return None

        try:
            doc_id = await self.store.create(self.state.identity, JOURNAL_COLLECTION, {
                "content": content,
                "userId": self.state.identity,
            })
        except StoreError as e:
            logger.error(f"Error adding journal entry: {e}")
            return None

        self.state.journal_input = ""
        return doc_id

    # -----------------------
    # Delete (request -> confirm | cancel)
    # -----------------------

    def request_delete(self, entry_id: str, kind) -> PendingDeletion:
        kind = EntryKind(kind)
        if kind not in DELETABLE_KINDS:
            raise ValueError(f"{kind.value} entries cannot be deleted")
        self.state.pending_deletion = PendingDeletion(kind=kind, entry_id=str(entry_id))
        return self.state.pending_deletion

    def cancel_delete(self) -> None:
        self.state.pending_deletion = None

    async def confirm_delete(self) -> bool:
        pending = self.state.pending_deletion
        if pending is None:
            return False
        if not self._ready():
            self.state.pending_deletion = None
            return False

        collection = COLLECTION_FOR_KIND[pending.kind]
        try:
            removed = await self.store.delete(self.state.identity, collection, pending.entry_id)
            if removed:
                self.color_print(f"{pending.kind.value} entry deleted successfully!", color="green")
            else:
                logger.info(f"confirm_delete(): no {pending.kind.value} entry {pending.entry_id}")
            return removed
        except StoreError as e:
            logger.error(f"Error deleting {pending.kind.value} entry: {e}")
            return False
        finally:
            self.state.pending_deletion = None
