import threading
from typing import Iterable, List

from langchain_community.chat_message_histories.in_memory import ChatMessageHistory
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from wellbeing.google_helpers import CHAT_HISTORY_MAX_TOKENS
from wellbeing.models import ROLE_MODEL, ChatMessage, sort_chronological


class ChatTimeline:
    """
    The chat view as two layers:
    - confirmed: the last authoritative snapshot, replaced wholesale
    - pending: optimistic turns appended locally before the store confirms them

    A pending turn leaves the overlay as soon as a snapshot carries its id.
    Turns whose write never lands stay visible locally (no rollback).
    """

    def __init__(self, max_tokens: int = CHAT_HISTORY_MAX_TOKENS):
        self.max_tokens = max_tokens
        self._lock = threading.Lock()
        self._confirmed: List[ChatMessage] = []
        self._pending: List[ChatMessage] = []

    def _approx_tokens(self, text: str) -> int:
        return max(1, len(text) // 4)

    # -----------------------
    # Mutations
    # -----------------------

    def replace_confirmed(self, messages: Iterable[ChatMessage]) -> None:
        ordered = sort_chronological(list(messages))
        with self._lock:
            self._confirmed = ordered
            self._drop_confirmed_pending_unlocked()

    def append_pending(self, message: ChatMessage) -> None:
        message.pending = True
        with self._lock:
            self._pending.append(message)

    def mark_persisted(self, message: ChatMessage, doc_id: str) -> None:
        """
        Record the store id of a pending turn. If the confirming snapshot
        already arrived the turn is superseded right away.
        """
        with self._lock:
            message.id = doc_id
            self._drop_confirmed_pending_unlocked()

    def reset(self) -> None:
        with self._lock:
            self._confirmed = []
            self._pending = []

    def _drop_confirmed_pending_unlocked(self) -> None:
        confirmed_ids = {m.id for m in self._confirmed}
        self._pending = [p for p in self._pending if p.id is None or p.id not in confirmed_ids]

    # -----------------------
    # Views
    # -----------------------

    @property
    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return sort_chronological(self._confirmed + self._pending)

    @property
    def confirmed(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._confirmed)

    @property
    def pending(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._confirmed) + len(self._pending)

    def inference_window(self) -> List[BaseMessage]:
        """
        Returns the conversation as LLM messages, oldest first.
        With max_tokens > 0 the oldest turns are dropped until the
        approximate token count fits.
        """
        history = ChatMessageHistory()
        for m in self.messages:
            if m.role == ROLE_MODEL:
                history.add_message(AIMessage(content=m.text))
            else:
                history.add_message(HumanMessage(content=m.text))
        if self.max_tokens > 0:
            self._prune_to_token_cap(history)
        return list(history.messages)

    def _prune_to_token_cap(self, history: ChatMessageHistory) -> None:
        msgs = list(history.messages)

        tokens = []
        total = 0
        for m in msgs:
            content = getattr(m, "content", "") or ""
            t = self._approx_tokens(str(content))
            tokens.append(t)
            total += t

        if total <= self.max_tokens:
            return

        # drop from front until under cap, but never the newest turn
        i = 0
        while i < len(msgs) - 1 and total > self.max_tokens:
            total -= tokens[i]
            i += 1

        history.messages = msgs[i:]
