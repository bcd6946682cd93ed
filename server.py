from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from wellbeing.base_utils import BaseUtils
from wellbeing.hub_session import HubSession
from wellbeing.models import ChatMessage, JournalEntry, MoodEntry

_fmt = BaseUtils()


class MoodRequest(BaseModel):
    mood: str


class JournalRequest(BaseModel):
    content: str


class ChatRequest(BaseModel):
    text: str


class DeletionRequest(BaseModel):
    entry_id: str
    kind: str


def _mood_row(e: MoodEntry) -> dict:
    return {"id": e.id, "mood": e.mood, "timestamp": _fmt.format_timestamp(e.timestamp)}


def _journal_row(e: JournalEntry) -> dict:
    return {"id": e.id, "content": e.content, "timestamp": _fmt.format_timestamp(e.timestamp)}


def _chat_row(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "role": m.role,
        "text": m.text,
        "pending": m.pending,
        "timestamp": _fmt.format_timestamp(m.timestamp),
    }


def create_app(hub_factory: Optional[Callable[[], HubSession]] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub = hub_factory() if hub_factory else HubSession()
        await hub.start()
        app.state.hub = hub
        try:
            yield
        finally:
            await hub.close()

    app = FastAPI(lifespan=lifespan)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _hub(request: Request) -> HubSession:
        return request.app.state.hub

    @app.get("/session")
    async def get_session(request: Request):
        state = _hub(request).state
        return {
            "identity": state.identity,
            "status": state.identity_status.value,
            "loading": state.loading,
        }

    @app.get("/views")
    async def get_views(request: Request):
        state = _hub(request).state
        pending = state.pending_deletion
        return {
            "mood": [_mood_row(e) for e in state.mood_view],
            "journal": [_journal_row(e) for e in state.journal_view],
            "chat": [_chat_row(m) for m in state.chat.messages],
            "chat_in_flight": state.chat_in_flight,
            "pending_deletion": (
                {"entry_id": pending.entry_id, "kind": pending.kind.value} if pending else None
            ),
        }

    @app.post("/mood")
    async def post_mood(body: MoodRequest, request: Request):
        doc_id = await _hub(request).entries.log_mood(body.mood)
        if doc_id is None:
            raise HTTPException(status_code=400, detail="Mood entry was not saved")
        return {"status": "success", "id": doc_id}

    @app.post("/journal")
    async def post_journal(body: JournalRequest, request: Request):
        doc_id = await _hub(request).entries.save_journal(body.content)
        if doc_id is None:
            raise HTTPException(status_code=400, detail="Journal entry was not saved")
        return {"status": "success", "id": doc_id}

    @app.post("/chat")
    async def post_chat(body: ChatRequest, request: Request):
        hub = _hub(request)
        in_flight = hub.state.chat_in_flight
        result = await hub.coordinator.send(body.text)
        if result is None:
            if in_flight:
                raise HTTPException(status_code=409, detail="A chat exchange is already in flight")
            raise HTTPException(status_code=400, detail="Message was not sent")
        return {
            "status": "success",
            "outcome": result.outcome,
            "fallback": result.fallback,
            "turns": [_chat_row(result.user_turn), _chat_row(result.model_turn)],
            "failed_writes": result.failed_writes,
        }

    @app.post("/deletions")
    async def post_deletion(body: DeletionRequest, request: Request):
        try:
            pending = _hub(request).entries.request_delete(body.entry_id, body.kind)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"status": "pending", "entry_id": pending.entry_id, "kind": pending.kind.value}

    @app.post("/deletions/confirm")
    async def confirm_deletion(request: Request):
        hub = _hub(request)
        if hub.state.pending_deletion is None:
            raise HTTPException(status_code=409, detail="No deletion is pending")
        removed = await hub.entries.confirm_delete()
        return {"status": "success" if removed else "error", "removed": removed}

    @app.post("/deletions/cancel")
    async def cancel_deletion(request: Request):
        _hub(request).entries.cancel_delete()
        return {"status": "cancelled"}

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
