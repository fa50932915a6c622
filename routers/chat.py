from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

import chat
import conversations
from database import get_db
from identity import VerifiedIdentity, require_user
from llm import AVAILABLE_MODELS, DEFAULT_MODEL, ChatClient, get_chat_client, resolve_model
from persona import PUBLIC_MODEL_LABEL
from schemas import ApiModel, Role

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatMessage(ApiModel):
    role: Role
    content: str


class ChatRequest(ApiModel):
    messages: List[ChatMessage]
    model: str = DEFAULT_MODEL
    conversation_id: Optional[str] = None


def turn_messages(messages: List[ChatMessage]) -> List[dict]:
    """Client messages as role/content dicts; system messages from clients are dropped."""
    out = [{"role": m.role, "content": m.content} for m in messages if m.role != Role.SYSTEM.value]
    if not any(m["role"] == Role.USER.value for m in out):
        raise HTTPException(status_code=400, detail="No user message provided")
    return out


@router.post("")
def send_message(
    req: ChatRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    client: ChatClient = Depends(get_chat_client),
):
    result = chat.run_turn(
        db,
        client,
        user.uid,
        turn_messages(req.messages),
        resolve_model(req.model),
        conversation_id=req.conversation_id,
    )
    return {
        "id": result.id,
        "message": {"role": Role.ASSISTANT.value, "content": result.content},
        "model": PUBLIC_MODEL_LABEL,
        "usage": result.usage,
        "conversationId": result.conversation_id,
    }


@router.get("/models")
def list_models(user: VerifiedIdentity = Depends(require_user)):
    return AVAILABLE_MODELS


@router.get("/conversations")
def list_conversations(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return conversations.list_summaries(db, user.uid)


@router.get("/conversations/{conversation_id}")
def get_conversation(
    conversation_id: str,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
):
    return conversations.get(db, user.uid, conversation_id)


@router.delete("/conversations/{conversation_id}")
def delete_conversation(
    conversation_id: str,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
):
    conversations.delete(db, user.uid, conversation_id)
    return {"deleted": True}
