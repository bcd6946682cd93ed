# wellbeing/hub_session.py

import logging
from typing import Callable, Optional

from wellbeing.chat_coordinator import MessageExchangeCoordinator
from wellbeing.document_store import DocumentStore
from wellbeing.entry_lifecycle import EntryLifecycleManager
from wellbeing.google_helpers import INITIAL_AUTH_TOKEN
from wellbeing.identity import IdentityProvider, IdentityResolver
from wellbeing.llm_client import GeminiChatClient
from wellbeing.projector import CollectionProjector
from wellbeing.session_state import IdentityStatus, SessionState

logger = logging.getLogger("wellbeing_hub")


class HubSession:
    """
    One user session: resolves the identity, then keeps the projection running
    until the identity changes or the session is closed.

        async with HubSession(store=store) as hub:
            await hub.coordinator.send("Hello")
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        chat_llm: Optional[GeminiChatClient] = None,
        provider: Optional[IdentityProvider] = None,
        state: Optional[SessionState] = None,
    ):
        self.state = state or SessionState()
        self.store = store if store is not None else DocumentStore()
        self.provider = provider or IdentityProvider(self.store.SessionFactory)
        self.chat_llm = chat_llm or GeminiChatClient()

        self.resolver = IdentityResolver(self.provider, self.state)
        self.projector = CollectionProjector(self.store, self.state)
        self.coordinator = MessageExchangeCoordinator(self.store, self.chat_llm, self.state)
        self.entries = EntryLifecycleManager(self.store, self.state)

        self._unsubscribe_identity: Optional[Callable[[], None]] = None

    async def start(self, bootstrap_token: Optional[str] = INITIAL_AUTH_TOKEN) -> Optional[str]:
        if self._unsubscribe_identity is None:
            self._unsubscribe_identity = self.provider.on_identity_changed(self._on_identity_changed)
        identity = await self.resolver.resolve(bootstrap_token)
        if identity:
            self.projector.start(identity)
        return identity

    def _on_identity_changed(self, identity: Optional[str]) -> None:
        # resolve() starts the projection itself on first sign-in
        if self.state.loading:
            return

        if identity is None:
            logger.info("Signed out; releasing subscriptions")
            self.projector.stop()
            self.state.clear_views()
            self.state.set_identity(None, missing=IdentityStatus.SUSPENDED)
            return

        if identity == self.state.identity and self.projector.running:
            return

        logger.info("Identity changed to %s; restarting projection", identity)
        self.projector.stop()
        self.state.clear_views()
        self.state.set_identity(identity)
        self.projector.start(identity)

    async def close(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        await self.projector.aclose()

    async def __aenter__(self) -> "HubSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
