# wellbeing/identity.py

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from wellbeing.entities import User
from wellbeing.google_helpers import AUTH_TOKEN_SECRET, INITIAL_AUTH_TOKEN
from wellbeing.session_state import IdentityStatus, SessionState

logger = logging.getLogger("wellbeing_hub")

IdentityListener = Callable[[Optional[str]], None]


class IdentityError(Exception):
    pass


class IdentityProvider:
    """
    Sessions backed by the `user` table.

    Bootstrap tokens are HS256 JWTs whose `sub` claim is the user id.
    Listeners are called with the new identity (or None) whenever it changes.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        token_secret: Optional[str] = AUTH_TOKEN_SECRET,
        algorithm: str = "HS256",
    ):
        self.SessionFactory = session_factory
        self._token_secret = token_secret
        self._algorithm = algorithm
        self._current: Optional[str] = None
        self._listeners: List[IdentityListener] = []

    def current_identity(self) -> Optional[str]:
        return self._current

    def on_identity_changed(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_current(self, user_id: Optional[str]) -> None:
        if user_id == self._current:
            return
        self._current = user_id
        for listener in list(self._listeners):
            try:
                listener(user_id)
            except Exception as e:
                logger.error("Identity listener failed: %s", e, exc_info=True)

    def _ensure_user_sync(self, user_id: Optional[str], is_anonymous: bool) -> str:
        session = self.SessionFactory()
        try:
            user = session.get(User, user_id) if user_id else None
            if user is None:
                user = User(is_anonymous=is_anonymous)
                if user_id:
                    user.id = user_id
                session.add(user)
                session.commit()
            return user.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def sign_in_anonymously(self) -> str:
        try:
            user_id = await asyncio.to_thread(self._ensure_user_sync, None, True)
        except SQLAlchemyError as e:
            raise IdentityError(f"anonymous sign-in failed: {e}") from e
        self._set_current(user_id)
        return user_id

    async def sign_in_with_token(self, token: str) -> str:
        if not self._token_secret:
            raise IdentityError("token sign-in needs AUTH_TOKEN_SECRET")
        try:
            claims = jwt.decode(token, self._token_secret, algorithms=[self._algorithm])
        except JWTError as e:
            raise IdentityError(f"invalid bootstrap token: {e}") from e

        subject = claims.get("sub")
        if not subject:
            raise IdentityError("bootstrap token has no subject")

        try:
            user_id = await asyncio.to_thread(self._ensure_user_sync, str(subject), False)
        except SQLAlchemyError as e:
            raise IdentityError(f"token sign-in failed: {e}") from e
        self._set_current(user_id)
        return user_id

    def sign_out(self) -> None:
        self._set_current(None)

    def issue_token(self, user_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
        if not self._token_secret:
            raise IdentityError("issuing tokens needs AUTH_TOKEN_SECRET")
        now = datetime.now(timezone.utc)
        to_encode = {"sub": str(user_id), "iat": now, "exp": now + expires_in}
        return jwt.encode(to_encode, self._token_secret, algorithm=self._algorithm)


class IdentityResolver:
    """
    Resolves one identity for the session: reuse the current session, else
    exchange the bootstrap token, else sign in anonymously. A failed attempt
    is logged and the next one is tried.
    """

    def __init__(self, provider: IdentityProvider, state: SessionState):
        self.provider = provider
        self.state = state

    async def resolve(self, bootstrap_token: Optional[str] = INITIAL_AUTH_TOKEN) -> Optional[str]:
        identity = self.provider.current_identity()

        if not identity and bootstrap_token:
            try:
                identity = await self.provider.sign_in_with_token(bootstrap_token)
            except IdentityError as e:
                logger.error(f"Error signing in with token: {e}")

        if not identity:
            try:
                identity = await self.provider.sign_in_anonymously()
            except IdentityError as e:
                logger.error(f"Error signing in anonymously: {e}")

        self.state.set_identity(identity, missing=IdentityStatus.FAILED)
        self.state.loading = False
        if identity:
            logger.info("Identity resolved: %s", identity)
        else:
            logger.error("No identity could be established; data access stays disabled")
        return identity
