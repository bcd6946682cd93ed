# wellbeing/projector.py

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from wellbeing.document_store import DocumentStore, Snapshot, StoreError, Subscription
from wellbeing.models import (
    CHAT_COLLECTION,
    JOURNAL_COLLECTION,
    MOOD_COLLECTION,
    chat_message_from_document,
    journal_entry_from_document,
    mood_entry_from_document,
    sort_newest_first,
)
from wellbeing.session_state import SessionState

logger = logging.getLogger("wellbeing_hub")


class CollectionProjector:
    """
    Keeps the mood, journal and chat views in step with the store.

    One subscription per collection, each in its own task. Every snapshot
    replaces its view wholesale with a freshly sorted list. A subscription that
    fails is logged and its view keeps the last good state; the other two
    carry on. stop() releases all three together.
    """

    def __init__(self, store: DocumentStore, state: SessionState):
        self.store = store
        self.state = state
        self.identity: Optional[str] = None
        self._subscriptions: Dict[str, Subscription] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self.failed: Dict[str, Exception] = {}
        self._appliers: Dict[str, Callable[[Snapshot], None]] = {
            MOOD_COLLECTION: self._apply_mood,
            JOURNAL_COLLECTION: self._apply_journal,
            CHAT_COLLECTION: self._apply_chat,
        }

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    # -----------------------
    # Snapshot appliers
    # -----------------------

    def _owned(self, snapshot: Snapshot) -> List:
        return [d for d in snapshot.documents if d.owner_id == self.identity]

    def _apply_mood(self, snapshot: Snapshot) -> None:
        entries = [mood_entry_from_document(d) for d in self._owned(snapshot)]
        self.state.mood_view = sort_newest_first(entries)

    def _apply_journal(self, snapshot: Snapshot) -> None:
        entries = [journal_entry_from_document(d) for d in self._owned(snapshot)]
        self.state.journal_view = sort_newest_first(entries)

    def _apply_chat(self, snapshot: Snapshot) -> None:
        history = [chat_message_from_document(d) for d in self._owned(snapshot)]
        self.state.chat.replace_confirmed(history)

    def apply(self, snapshot: Snapshot) -> None:
        self._appliers[snapshot.collection](snapshot)

    # -----------------------
    # Lifecycle
    # -----------------------

    async def _follow(self, collection: str, subscription: Subscription) -> None:
        try:
            async for snapshot in subscription:
                self.apply(snapshot)
                logger.debug("[PROJECTOR] %s -> %d documents", collection, len(snapshot.documents))
        except StoreError as e:
            self.failed[collection] = e
            logger.error(f"Error fetching {collection}: {e}")
        except Exception as e:
            self.failed[collection] = e
            logger.error(f"Error projecting {collection}: {e}", exc_info=True)

    def start(self, identity: str) -> None:
        if self.identity == identity and self.running:
            return
        self.stop()
        self.identity = identity
        self.failed = {}
        for collection in self._appliers:
            sub = self.store.subscribe(identity, collection)
            self._subscriptions[collection] = sub
            self._tasks[collection] = asyncio.create_task(
                self._follow(collection, sub), name=f"projector:{collection}"
            )
        logger.info("Projector started for %s", identity)

    def stop(self) -> None:
        for sub in self._subscriptions.values():
            sub.close()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._subscriptions = {}
        self._tasks = {}
        if self.identity is not None:
            logger.info("Projector stopped for %s", self.identity)
        self.identity = None

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        self.stop()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
