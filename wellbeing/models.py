# wellbeing/models.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Mood(str, Enum):
    HAPPY = "Happy"
    NEUTRAL = "Neutral"
    SAD = "Sad"
    ANXIOUS = "Anxious"
    ENERGETIC = "Energetic"
    TIRED = "Tired"
    CALM = "Calm"
    STRESSED = "Stressed"

    @classmethod
    def labels(cls) -> List[str]:
        return [m.value for m in cls]


class EntryKind(str, Enum):
    MOOD = "mood"
    JOURNAL = "journal"
    CHAT = "chat"


MOOD_COLLECTION = "moodEntries"
JOURNAL_COLLECTION = "journalEntries"
CHAT_COLLECTION = "chatHistory"

COLLECTION_FOR_KIND = {
    EntryKind.MOOD: MOOD_COLLECTION,
    EntryKind.JOURNAL: JOURNAL_COLLECTION,
    EntryKind.CHAT: CHAT_COLLECTION,
}

ROLE_USER = "user"
ROLE_MODEL = "model"


@dataclass(frozen=True)
class Document:
    """A raw store document as delivered inside a snapshot."""
    id: str
    owner_id: str
    collection: str
    payload: Dict[str, Any]
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class MoodEntry:
    id: str
    owner_id: str
    mood: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class JournalEntry:
    id: str
    owner_id: str
    content: str
    timestamp: Optional[datetime] = None


@dataclass
class ChatMessage:
    role: str
    text: str
    owner_id: str
    timestamp: Optional[datetime] = None
    # None until the store has acknowledged the write
    id: Optional[str] = None
    pending: bool = field(default=False, compare=False)

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "text": self.text}


def _as_naive_utc(ts: datetime) -> datetime:
    # SQLite hands back naive values, Postgres aware ones
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def timestamp_sort_key(ts: Optional[datetime], entry_id: Optional[str] = None) -> Tuple[int, datetime, str]:
    """
    Missing timestamps sort as the lowest possible value; ties break on id.
    """
    if ts is None:
        return (0, datetime.min, entry_id or "")
    return (1, _as_naive_utc(ts), entry_id or "")


def mood_entry_from_document(doc: Document) -> MoodEntry:
    return MoodEntry(
        id=doc.id,
        owner_id=doc.owner_id,
        mood=str(doc.payload.get("mood") or ""),
        timestamp=doc.timestamp,
    )


def journal_entry_from_document(doc: Document) -> JournalEntry:
    return JournalEntry(
        id=doc.id,
        owner_id=doc.owner_id,
        content=str(doc.payload.get("content") or ""),
        timestamp=doc.timestamp,
    )


def chat_message_from_document(doc: Document) -> ChatMessage:
    return ChatMessage(
        role=str(doc.payload.get("role") or ROLE_USER),
        text=str(doc.payload.get("text") or ""),
        owner_id=doc.owner_id,
        timestamp=doc.timestamp,
        id=doc.id,
    )


def sort_newest_first(entries: List[Any]) -> List[Any]:
    return sorted(entries, key=lambda e: timestamp_sort_key(e.timestamp, e.id), reverse=True)


def sort_chronological(entries: List[Any]) -> List[Any]:
    return sorted(entries, key=lambda e: timestamp_sort_key(e.timestamp, e.id))
