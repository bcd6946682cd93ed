"""Tests for identity resolution."""

from unittest.mock import AsyncMock

import pytest

from wellbeing.entities import User
from wellbeing.identity import IdentityError, IdentityProvider, IdentityResolver
from wellbeing.session_state import IdentityStatus

from conftest import TEST_SECRET


@pytest.fixture
def provider(store):
    return IdentityProvider(store.SessionFactory, token_secret=TEST_SECRET)


class TestProvider:
    @pytest.mark.asyncio
    async def test_anonymous_sign_in_creates_user(self, provider, store):
        uid = await provider.sign_in_anonymously()
        session = store.SessionFactory()
        try:
            user = session.get(User, uid)
            assert user is not None and user.is_anonymous
        finally:
            session.close()
        assert provider.current_identity() == uid

    @pytest.mark.asyncio
    async def test_token_sign_in_uses_subject(self, provider):
        token = provider.issue_token("user-42")
        assert await provider.sign_in_with_token(token) == "user-42"
        assert provider.current_identity() == "user-42"

    @pytest.mark.asyncio
    async def test_bad_token_raises(self, provider):
        with pytest.raises(IdentityError):
            await provider.sign_in_with_token("not-a-jwt")

    @pytest.mark.asyncio
    async def test_listeners_see_changes_once(self, provider):
        seen = []
        unsubscribe = provider.on_identity_changed(seen.append)
        await provider.sign_in_with_token(provider.issue_token("user-1"))
        await provider.sign_in_with_token(provider.issue_token("user-1"))
        provider.sign_out()
        unsubscribe()
        await provider.sign_in_anonymously()
        assert seen == ["user-1", None]


class TestResolver:
    @pytest.mark.asyncio
    async def test_reuses_existing_session(self, provider, state):
        await provider.sign_in_with_token(provider.issue_token("user-7"))
        provider.sign_in_anonymously = AsyncMock()

        assert await IdentityResolver(provider, state).resolve("ignored") == "user-7"
        provider.sign_in_anonymously.assert_not_called()
        assert state.identity_status == IdentityStatus.READY
        assert state.loading is False

    @pytest.mark.asyncio
    async def test_bootstrap_token_wins_over_anonymous(self, provider, state):
        token = provider.issue_token("user-9")
        assert await IdentityResolver(provider, state).resolve(token) == "user-9"
        assert state.identity == "user-9"

    @pytest.mark.asyncio
    async def test_bad_token_falls_back_to_anonymous(self, provider, state):
        identity = await IdentityResolver(provider, state).resolve("garbage")
        assert identity is not None
        assert state.ready

    @pytest.mark.asyncio
    async def test_total_failure_leaves_session_inert(self, provider, state):
        provider.sign_in_anonymously = AsyncMock(side_effect=IdentityError("offline"))
        assert await IdentityResolver(provider, state).resolve(None) is None
        assert state.identity is None
        assert state.identity_status == IdentityStatus.FAILED
        assert not state.ready
        assert state.loading is False
