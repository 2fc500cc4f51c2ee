from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from fm_chat.app.settings import AppSettings
from fm_chat.app.wiring import build_bundle
from fm_chat.domain.errors import ConversationNotFound, ModelError

logging.basicConfig(level=logging.INFO, format="%(message)s")
log = logging.getLogger("fm_chat")

app = FastAPI(title="fm_chat")
settings = AppSettings.from_env()


class ChatRequest(BaseModel):
    conversation_id: str
    message: str


class ChatResponse(BaseModel):
    answer: str
    meta: Dict[str, Any]


class ConversationSummary(BaseModel):
    conversation_id: str
    title: str
    created_at: str
    turns: int


@app.get("/health")
async def health():
    bundle = build_bundle(settings)
    availability = await bundle.llm.check_availability()
    return {"ok": True, "model_available": availability.available, "reason": availability.reason}


@app.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest):
    bundle = build_bundle(settings)
    availability = await bundle.llm.check_availability()
    try:
        answer, meta = await bundle.engine.handle_user_message_ex(
            req.conversation_id, req.message, availability=availability
        )
    except ModelError as e:
        log.info(json.dumps({"event": "chat_failed", "conversation_id": req.conversation_id,
                             "reason": e.reason.value}, ensure_ascii=False))
        raise HTTPException(status_code=503, detail={"reason": e.reason.value, "detail": e.detail})

    log.info(json.dumps({"event": "chat", **meta}, ensure_ascii=False))
    return ChatResponse(answer=answer, meta=meta)


@app.get("/conversations", response_model=List[ConversationSummary])
def list_conversations():
    bundle = build_bundle(settings)
    return [
        ConversationSummary(
            conversation_id=c.conversation_id,
            title=c.title,
            created_at=c.created_at.isoformat(),
            turns=len(c.turns),
        )
        for c in bundle.repo.list_conversations()
    ]


@app.get("/conversations/{cid}")
def get_conversation(cid: str):
    bundle = build_bundle(settings)
    if not bundle.repo.exists(cid):
        raise HTTPException(status_code=404, detail="Conversation not found")
    convo = bundle.repo.load(cid)

    def t2d(t):
        return {
            "id": t.id,
            "role": t.role,
            "text": t.text,
            "created_at": t.created_at.isoformat(),
        }

    return {
        "conversation_id": convo.conversation_id,
        "title": convo.title,
        "created_at": convo.created_at.isoformat(),
        "turns": [t2d(t) for t in convo.turns],
    }


@app.delete("/conversations/{cid}")
def delete_conversation(cid: str):
    bundle = build_bundle(settings)
    ok = bundle.repo.delete(cid)
    log.info(json.dumps({"event": "conversation_deleted", "conversation_id": cid, "deleted": ok}))
    return {"deleted": ok}


@app.get("/conversations/{cid}/context")
async def get_context(cid: str):
    bundle = build_bundle(settings)
    try:
        decision = await bundle.engine.preview_context(cid)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")

    return {
        "conversation_id": cid,
        **decision.as_meta(),
        "summary": decision.summary,
        "turn_ids": [t.id for t in decision.turns],
    }
