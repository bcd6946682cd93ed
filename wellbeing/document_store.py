# wellbeing/document_store.py

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from wellbeing.entities import Base, StoredDocument
from wellbeing.google_helpers import (
    APP_ID,
    SNAPSHOT_POLL_INTERVAL,
    create_session_factory,
    get_db_engine,
)
from wellbeing.models import Document

logger = logging.getLogger("wellbeing_hub")


class StoreError(Exception):
    pass


@dataclass(frozen=True)
class Snapshot:
    owner_id: str
    collection: str
    documents: List[Document]


def _fingerprint(docs: List[Document]) -> Tuple:
    return tuple(
        sorted(
            (d.id, str(d.timestamp), json.dumps(d.payload, sort_keys=True, default=str))
            for d in docs
        )
    )


class Subscription:
    """
    Live query over one (owner_id, collection) scope.

    Iterating yields a Snapshot with the full matching set each time that set
    changes; the first snapshot is delivered immediately. Each `async for`
    starts a fresh stream. close() ends every stream and releases the
    subscription from the store.
    """

    def __init__(self, store: "DocumentStore", owner_id: str, collection: str, poll_interval: float):
        self.store = store
        self.owner_id = owner_id
        self.collection = collection
        self.poll_interval = poll_interval
        self._wake = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        return self._snapshots()

    async def _snapshots(self) -> AsyncIterator[Snapshot]:
        last_fp: Optional[Tuple] = None
        self.store._register(self)
        try:
            while not self._closed:
                self._wake.clear()
                docs = await self.store.fetch(self.owner_id, self.collection)
                if self._closed:
                    break
                fp = _fingerprint(docs)
                if fp != last_fp:
                    last_fp = fp
                    yield Snapshot(self.owner_id, self.collection, docs)
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.store._unregister(self)

    def wake(self) -> None:
        self._wake.set()

    def close(self) -> None:
        self._closed = True
        self._wake.set()


class DocumentStore:
    """
    Per-user document collections on top of SQLAlchemy.

    Every call runs a short synchronous session in a worker thread
    (asyncio.to_thread) so the event loop is never blocked by the database.
    """

    def __init__(self, engine=None, *, app_id: str = APP_ID, poll_interval: float = SNAPSHOT_POLL_INTERVAL):
        self.engine = engine if engine is not None else get_db_engine()
        Base.metadata.create_all(self.engine)
        self.SessionFactory = create_session_factory(self.engine)
        self.app_id = app_id
        self.poll_interval = poll_interval
        self._subscriptions: Set[Subscription] = set()

    # -----------------------
    # Sync primitives (worker thread)
    # -----------------------

    def _fetch_sync(self, owner_id: str, collection: str) -> List[Document]:
        session = self.SessionFactory()
        try:
            rows = (
                session.query(StoredDocument)
                .filter(StoredDocument.app_id == self.app_id)
                .filter(StoredDocument.owner_id == str(owner_id))
                .filter(StoredDocument.collection == collection)
                .all()
            )
            return [
                Document(
                    id=r.id,
                    owner_id=r.owner_id,
                    collection=r.collection,
                    payload=dict(r.payload or {}),
                    timestamp=r.timestamp,
                )
                for r in rows
            ]
        finally:
            session.close()

    def _create_sync(self, owner_id: str, collection: str, payload: Dict[str, Any]) -> str:
        session = self.SessionFactory()
        try:
            doc = StoredDocument(
                app_id=self.app_id,
                owner_id=str(owner_id),
                collection=collection,
                payload=dict(payload),
            )
            session.add(doc)
            session.commit()
            return doc.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _delete_sync(self, owner_id: str, collection: str, doc_id: str) -> bool:
        session = self.SessionFactory()
        try:
            removed = (
                session.query(StoredDocument)
                .filter(StoredDocument.app_id == self.app_id)
                .filter(StoredDocument.owner_id == str(owner_id))
                .filter(StoredDocument.collection == collection)
                .filter(StoredDocument.id == str(doc_id))
                .delete(synchronize_session=False)
            )
            session.commit()
            return removed > 0
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------
    # Async API
    # -----------------------

    async def fetch(self, owner_id: str, collection: str) -> List[Document]:
        try:
            return await asyncio.to_thread(self._fetch_sync, owner_id, collection)
        except SQLAlchemyError as e:
            raise StoreError(f"fetch {collection} failed: {e}") from e

    async def create(self, owner_id: str, collection: str, payload: Dict[str, Any]) -> str:
        try:
            doc_id = await asyncio.to_thread(self._create_sync, owner_id, collection, payload)
        except SQLAlchemyError as e:
            raise StoreError(f"create in {collection} failed: {e}") from e
        logger.debug("[STORE] created %s/%s for owner %s", collection, doc_id, owner_id)
        self._notify(owner_id, collection)
        return doc_id

    async def delete(self, owner_id: str, collection: str, doc_id: str) -> bool:
        try:
            removed = await asyncio.to_thread(self._delete_sync, owner_id, collection, doc_id)
        except SQLAlchemyError as e:
            raise StoreError(f"delete {collection}/{doc_id} failed: {e}") from e
        self._notify(owner_id, collection)
        return removed

    def subscribe(self, owner_id: str, collection: str) -> Subscription:
        return Subscription(self, owner_id, collection, self.poll_interval)

    # -----------------------
    # Subscription bookkeeping
    # -----------------------

    def _register(self, sub: Subscription) -> None:
        self._subscriptions.add(sub)

    def _unregister(self, sub: Subscription) -> None:
        self._subscriptions.discard(sub)

    def _notify(self, owner_id: str, collection: str) -> None:
        for sub in list(self._subscriptions):
            if sub.owner_id == str(owner_id) and sub.collection == collection:
                sub.wake()

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)
