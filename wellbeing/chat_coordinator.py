# wellbeing/chat_coordinator.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from wellbeing.document_store import DocumentStore, StoreError
from wellbeing.llm_client import GeminiChatClient, MalformedResponseError
from wellbeing.models import CHAT_COLLECTION, ROLE_MODEL, ROLE_USER, ChatMessage
from wellbeing.session_state import SessionState

logger = logging.getLogger("wellbeing_hub")

GENERATION_FALLBACK = "Sorry, I couldn't generate a response. Please try again."
CONNECTIVITY_FALLBACK = "There was an error connecting to the AI. Please check your network and try again."

OUTCOME_OK = "ok"
OUTCOME_MALFORMED = "malformed"
OUTCOME_TRANSPORT = "transport"


@dataclass
class ExchangeResult:
    user_turn: ChatMessage
    model_turn: ChatMessage
    outcome: str
    failed_writes: List[str] = field(default_factory=list)

    @property
    def fallback(self) -> bool:
        return self.outcome != OUTCOME_OK


class MessageExchangeCoordinator:
    """
    Runs one chat turn at a time:
      echo the user turn locally -> persist it -> ask the model with the whole
      conversation -> echo and persist the reply (or a fallback) -> release.

    A send while a turn is in flight is dropped, not queued.
    """

    def __init__(self, store: Optional[DocumentStore], chat_llm: GeminiChatClient, state: SessionState):
        self.store = store
        self.chat_llm = chat_llm
        self.state = state

    def _can_send(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        if self.state.chat_in_flight:
            logger.debug("Chat send dropped: an exchange is already in flight")
            return False
        return self.store is not None and self.state.ready

    async def _persist(self, turn: ChatMessage, failed_writes: List[str]) -> None:
        try:
            doc_id = await self.store.create(turn.owner_id, CHAT_COLLECTION, turn.to_payload())
        except StoreError as e:
            failed_writes.append(turn.role)
            logger.error(f"Error saving {turn.role} chat turn: {e}")
            return
        self.state.chat.mark_persisted(turn, doc_id)

    def _echo(self, role: str, text: str, owner: str) -> ChatMessage:
        turn = ChatMessage(
            role=role,
            text=text,
            owner_id=owner,
            timestamp=datetime.now(timezone.utc),
        )
        # the timeline was reset if the identity changed mid-turn
        if self.state.identity == owner:
            self.state.chat.append_pending(turn)
        return turn

    async def send(self, text: Optional[str] = None) -> Optional[ExchangeResult]:
        text = self.state.chat_input if text is None else text
        if not self._can_send(text):
            return None

        owner = self.state.identity
        self.state.chat_in_flight = True
        failed_writes: List[str] = []
        try:
            user_turn = self._echo(ROLE_USER, text, owner)
            self.state.chat_input = ""
            await self._persist(user_turn, failed_writes)

            messages_for_llm = self.state.chat.inference_window()
            try:
                reply = await self.chat_llm.invoke(messages_for_llm)
                outcome = OUTCOME_OK
            except MalformedResponseError as e:
                logger.error(f"Unexpected API response structure: {e} {e.result!r}")
                reply = GENERATION_FALLBACK
                outcome = OUTCOME_MALFORMED
            except Exception as e:
                # InferenceTransportError or anything unexpected from the call
                logger.error(f"Error communicating with AI chatbot: {e}")
                reply = CONNECTIVITY_FALLBACK
                outcome = OUTCOME_TRANSPORT

            model_turn = self._echo(ROLE_MODEL, reply, owner)
            await self._persist(model_turn, failed_writes)
            return ExchangeResult(user_turn, model_turn, outcome, failed_writes)
        finally:
            self.state.chat_in_flight = False
