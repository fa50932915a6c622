"""
Chat turn handling shared by the web and mobile chat endpoints.

One turn: check entitlements, reserve a message from the daily quota, call
the model, sanitize the reply, store it and log the token usage. The quota
reservation is given back when the model call or storing the reply fails.
"""

import logging
import uuid
from typing import Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

import conversations
import persona
import subscriptions
import users
from database import USAGE_LOGS, create_document
from errors import Forbidden, ServiceError, UpstreamError
from llm import ChatClient, Completion, TokenUsage
from schemas import ApiModel, UsageLog

logger = logging.getLogger(__name__)


class TurnResult(ApiModel):
    id: str
    content: str
    conversation_id: str
    usage: Optional[TokenUsage] = None
    messages_used_today: int
    messages_per_day: int


def log_usage(db: Database, uid: str, model: str, usage: Optional[TokenUsage]) -> None:
    usage = usage or TokenUsage()
    create_document(
        db,
        USAGE_LOGS,
        UsageLog(
            user_id=uid,
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        ),
    )


def run_turn(
    db: Database,
    client: ChatClient,
    uid: str,
    messages: List[Dict[str, str]],
    model: str,
    conversation_id: Optional[str] = None,
    has_image: bool = False,
    has_file: bool = False,
) -> TurnResult:
    if users.get_profile(db, uid) is None:
        raise Forbidden(users.PROFILE_MISSING)

    status = subscriptions.get_status(db, uid)
    if has_image and not status.can_upload_images:
        raise Forbidden("Image uploads require a Premium subscription. Upgrade to unlock this feature.")
    if has_file and not status.can_upload_files:
        raise Forbidden("File uploads require a Premium subscription. Upgrade to unlock this feature.")

    conversations.check_writable(db, uid, conversation_id)
    profile = users.consume_message(db, uid, status.messages_per_day)
    try:
        completion: Completion = client.complete(model, messages)
    except UpstreamError:
        users.release_message(db, uid)
        logger.warning("Model call failed for %s; quota reservation released", uid)
        raise

    reply = persona.sanitize(completion.content)
    try:
        conversation_id = conversations.append_turn(
            db, uid, conversation_id, messages, reply, persona.PUBLIC_MODEL_LABEL
        )
        log_usage(db, uid, model, completion.usage)
    except (PyMongoError, ServiceError):
        users.release_message(db, uid)
        logger.warning("Storing the reply failed for %s; quota reservation released", uid)
        raise

    return TurnResult(
        id=completion.id or str(uuid.uuid4()),
        content=reply,
        conversation_id=conversation_id,
        usage=completion.usage,
        messages_used_today=profile.messages_used_today,
        messages_per_day=status.messages_per_day,
    )
