"""Pytest configuration and fixtures."""

import asyncio
import os
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx
import pytest

# Set before wellbeing.google_helpers reads the environment
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("AUTH_TOKEN_SECRET", "test-only-token-secret")

from sqlalchemy import create_engine

from wellbeing.document_store import DocumentStore, StoreError
from wellbeing.llm_client import GeminiChatClient
from wellbeing.session_state import SessionState

TEST_SECRET = "test-only-token-secret"


class RecordingStore(DocumentStore):
    """DocumentStore that records writes and can fail chosen operations."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.creates: List[Tuple[str, str, Dict[str, Any]]] = []
        self.deletes: List[Tuple[str, str, str]] = []
        self.fail_create: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.fail_fetch: Set[str] = set()

    async def create(self, owner_id, collection, payload):
        self.creates.append((owner_id, collection, dict(payload)))
        if collection in self.fail_create:
            raise StoreError(f"create in {collection} refused")
        return await super().create(owner_id, collection, payload)

    async def delete(self, owner_id, collection, doc_id):
        self.deletes.append((owner_id, collection, doc_id))
        if collection in self.fail_delete:
            raise StoreError(f"delete in {collection} refused")
        return await super().delete(owner_id, collection, doc_id)

    async def fetch(self, owner_id, collection):
        if collection in self.fail_fetch:
            raise StoreError(f"permission denied on {collection}")
        return await super().fetch(owner_id, collection)


def gemini_reply(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def make_llm(handler: Callable) -> GeminiChatClient:
    return GeminiChatClient(
        "gemini-2.0-flash",
        api_key="test-gemini-key",
        api_base="https://llm.test/v1beta",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def replying(text: str, calls: Optional[list] = None) -> Callable:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(200, json=gemini_reply(text))
    return handler


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def engine(tmp_path):
    return create_engine(f"sqlite:///{tmp_path / 'hub.db'}", future=True)


@pytest.fixture
def store(engine):
    return RecordingStore(engine, app_id="test-app", poll_interval=0.05)


@pytest.fixture
def state():
    return SessionState()


@pytest.fixture
def ready_state():
    s = SessionState()
    s.set_identity("user-1")
    s.loading = False
    return s
