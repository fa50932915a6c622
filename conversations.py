import logging
import uuid
from datetime import datetime
from typing import List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from database import CONVERSATIONS, create_document
from errors import Forbidden, NotFound
from schemas import ApiModel, Conversation, Message, Role, for_store, utcnow

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


class ConversationSummary(ApiModel):
    id: str
    title: str
    last_message: Optional[str] = None
    message_count: int
    model: str
    updated_at: datetime


def new_message(role: str, content: str, at: Optional[datetime] = None) -> Message:
    return Message(id=str(uuid.uuid4()), role=role, content=content, timestamp=at or utcnow())


def _load_owned(db: Database, uid: str, conversation_id: str) -> Conversation:
    conversation = Conversation.from_doc(db[CONVERSATIONS].find_one({"_id": conversation_id}))
    if conversation is None:
        raise NotFound("Conversation not found")
    if conversation.user_id != uid:
        raise Forbidden("Access denied")
    return conversation


def check_writable(db: Database, uid: str, conversation_id: Optional[str]) -> None:
    """A turn may target a new id or a conversation the caller owns."""
    if not conversation_id:
        return
    existing = db[CONVERSATIONS].find_one({"_id": conversation_id}, {"user_id": 1})
    if existing is not None and existing.get("user_id") != uid:
        raise Forbidden("Access denied")


def append_turn(
    db: Database,
    uid: str,
    conversation_id: Optional[str],
    user_messages: List[dict],
    reply: str,
    model: str,
) -> str:
    """Store one chat turn and return the conversation id.

    A new conversation keeps every message the client sent; an existing one
    only gets the latest user message and the reply appended.
    """
    now = utcnow()
    conversation_id = conversation_id or str(uuid.uuid4())
    assistant = new_message(Role.ASSISTANT.value, reply, now)
    existing = db[CONVERSATIONS].find_one({"_id": conversation_id}, {"user_id": 1})

    if existing is None:
        last_user = next((m for m in reversed(user_messages) if m["role"] == Role.USER.value), None)
        title = last_user["content"][:TITLE_LENGTH] if last_user and last_user["content"] else "New Chat"
        messages = [new_message(m["role"], m["content"], now) for m in user_messages] + [assistant]
        create_document(
            db,
            CONVERSATIONS,
            Conversation(id=conversation_id, user_id=uid, title=title, messages=messages, model=model),
        )
        return conversation_id

    if existing.get("user_id") != uid:
        raise Forbidden("Access denied")

    appended = []
    if user_messages:
        last = user_messages[-1]
        appended.append(new_message(last["role"], last["content"], now))
    appended.append(assistant)
    db[CONVERSATIONS].update_one(
        {"_id": conversation_id},
        {
            "$push": {"messages": {"$each": [for_store(m.model_dump()) for m in appended]}},
            "$set": {"updated_at": for_store(now)},
        },
    )
    return conversation_id


def list_summaries(db: Database, uid: str, limit: int = 50) -> List[ConversationSummary]:
    cursor = db[CONVERSATIONS].find({"user_id": uid}).sort("updated_at", DESCENDING).limit(limit)
    out: List[ConversationSummary] = []
    for doc in cursor:
        c = Conversation.from_doc(doc)
        out.append(
            ConversationSummary(
                id=c.id,
                title=c.title,
                last_message=c.messages[-1].content if c.messages else None,
                message_count=len(c.messages),
                model=c.model,
                updated_at=c.updated_at,
            )
        )
    return out


def get(db: Database, uid: str, conversation_id: str) -> Conversation:
    return _load_owned(db, uid, conversation_id)


def delete(db: Database, uid: str, conversation_id: str) -> None:
    _load_owned(db, uid, conversation_id)
    db[CONVERSATIONS].delete_one({"_id": conversation_id, "user_id": uid})
    logger.info("Deleted conversation %s for %s", conversation_id, uid)
