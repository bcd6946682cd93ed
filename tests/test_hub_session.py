"""Tests for session wiring: identity first, then projection, teardown on change."""

import asyncio

import httpx
import pytest

from wellbeing.hub_session import HubSession
from wellbeing.identity import IdentityProvider
from wellbeing.models import CHAT_COLLECTION, MOOD_COLLECTION
from wellbeing.session_state import IdentityStatus

from conftest import TEST_SECRET, gemini_reply, make_llm, replying, wait_until


@pytest.fixture
def hub(store):
    provider = IdentityProvider(store.SessionFactory, token_secret=TEST_SECRET)
    return HubSession(store=store, chat_llm=make_llm(replying("Hi there")), provider=provider)


@pytest.mark.asyncio
async def test_start_resolves_then_projects(hub, store):
    identity = await hub.start(bootstrap_token=None)
    try:
        assert identity is not None
        assert hub.state.identity_status == IdentityStatus.READY
        assert not hub.state.loading
        await wait_until(lambda: store.active_subscriptions == 3)

        await hub.entries.log_mood("Energetic")
        await wait_until(lambda: [e.mood for e in hub.state.mood_view] == ["Energetic"])
    finally:
        await hub.close()
    assert store.active_subscriptions == 0


@pytest.mark.asyncio
async def test_chat_turn_is_projected_without_duplicates(hub, store):
    await hub.start(bootstrap_token=None)
    try:
        await hub.coordinator.send("Hello")
        await wait_until(lambda: len(hub.state.chat.confirmed) == 2)
        assert [(m.role, m.text) for m in hub.state.chat.messages] == [("user", "Hello"), ("model", "Hi there")]
        assert hub.state.chat.pending == []
    finally:
        await hub.close()


@pytest.mark.asyncio
async def test_sign_out_releases_subscriptions_and_views(hub, store):
    await hub.start(bootstrap_token=None)
    try:
        await hub.entries.log_mood("Happy")
        await wait_until(lambda: hub.state.mood_view)

        hub.provider.sign_out()

        await wait_until(lambda: store.active_subscriptions == 0)
        assert hub.state.mood_view == []
        assert hub.state.identity is None
        assert hub.state.identity_status == IdentityStatus.SUSPENDED
        assert await hub.entries.log_mood("Happy") is None
    finally:
        await hub.close()


@pytest.mark.asyncio
async def test_identity_change_rescopes_views(hub, store):
    await store.create("other-user", MOOD_COLLECTION, {"mood": "Tired"})
    await hub.start(bootstrap_token=None)
    try:
        await hub.provider.sign_in_with_token(hub.provider.issue_token("other-user"))
        await wait_until(lambda: [e.mood for e in hub.state.mood_view] == ["Tired"])
        assert hub.state.identity == "other-user"
    finally:
        await hub.close()


def _held_reply(text, started, release):
    async def handler(request):
        started.set()
        await release.wait()
        return httpx.Response(200, json=gemini_reply(text))
    return handler


def _held_hub(store, started, release):
    provider = IdentityProvider(store.SessionFactory, token_secret=TEST_SECRET)
    llm = make_llm(_held_reply("reply for A", started, release))
    return HubSession(store=store, chat_llm=llm, provider=provider)


@pytest.mark.asyncio
async def test_identity_switch_mid_turn_keeps_reply_with_sender(store):
    started, release = asyncio.Event(), asyncio.Event()
    hub = _held_hub(store, started, release)
    user_a = await hub.start(bootstrap_token=None)
    try:
        turn = asyncio.create_task(hub.coordinator.send("secret from A"))
        await started.wait()
        await hub.provider.sign_in_with_token(hub.provider.issue_token("user-B"))
        release.set()
        result = await turn

        chat_writes = [(owner, payload["role"]) for owner, coll, payload in store.creates if coll == CHAT_COLLECTION]
        assert chat_writes == [(user_a, "user"), (user_a, "model")]
        assert result.model_turn.owner_id == user_a
        assert await store.fetch("user-B", CHAT_COLLECTION) == []
        assert len(await store.fetch(user_a, CHAT_COLLECTION)) == 2
        assert hub.state.identity == "user-B"
        assert hub.state.chat.messages == []
    finally:
        await hub.close()


@pytest.mark.asyncio
async def test_sign_out_mid_turn_keeps_reply_with_sender(store):
    started, release = asyncio.Event(), asyncio.Event()
    hub = _held_hub(store, started, release)
    user_a = await hub.start(bootstrap_token=None)
    try:
        turn = asyncio.create_task(hub.coordinator.send("Hello"))
        await started.wait()
        hub.provider.sign_out()
        release.set()
        await turn

        owners = [owner for owner, coll, _ in store.creates if coll == CHAT_COLLECTION]
        assert owners == [user_a, user_a]
        assert hub.state.chat.messages == []
        assert not hub.state.chat_in_flight
    finally:
        await hub.close()
