"""
Mobile app API: profile bootstrap, tier-selected chat with upload gating,
and the subscription checkout flow.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

import chat
import conversations
import subscriptions
import users
from database import get_db, load_settings
from errors import Forbidden, NotFound
from identity import VerifiedIdentity, require_user
from llm import ChatClient, get_chat_client, model_for_tier
from paystack import PaystackClient, get_payments
from routers.chat import ChatMessage, turn_messages
from routers.subscriptions import cancel_for_user, paystack_key, verify_for_user
from schemas import ApiModel, Role, Tier

router = APIRouter(prefix="/api/mobile", tags=["mobile"])


class MobileMessage(ChatMessage):
    image_url: Optional[str] = None


class MobileChatRequest(ApiModel):
    messages: List[MobileMessage]
    conversation_id: Optional[str] = None
    has_image: bool = False
    has_file: bool = False


class SubscribeRequest(ApiModel):
    plan_id: str
    callback_url: Optional[str] = None


class VerifyRequest(ApiModel):
    reference: str


class MobileUserProfile(ApiModel):
    uid: str
    email: str
    display_name: str
    tier: Tier
    is_subscribed: bool
    can_upload_images: bool
    can_upload_files: bool
    messages_used_today: int
    messages_per_day: int
    subscription_end_date: Optional[datetime] = None
    plan_name: Optional[str] = None


def _profile_view(db: Database, profile) -> MobileUserProfile:
    status = subscriptions.get_status(db, profile.uid)
    return MobileUserProfile(
        uid=profile.uid,
        email=profile.email,
        display_name=profile.display_name,
        **status.model_dump(
            include={
                "tier",
                "is_subscribed",
                "can_upload_images",
                "can_upload_files",
                "messages_used_today",
                "messages_per_day",
                "subscription_end_date",
                "plan_name",
            }
        ),
    )


@router.get("/plans")
def list_plans(db: Database = Depends(get_db)):
    return subscriptions.list_plans(db)


router.add_api_route("/paystack-key", paystack_key, methods=["GET"])


@router.post("/auth/register")
def register(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    profile = users.get_profile(db, user.uid)
    if profile is None:
        if not load_settings(db).registration_enabled:
            raise Forbidden("Registration is currently disabled")
        profile = users.get_or_create_profile(db, user.uid, user.email)
    return _profile_view(db, profile)


@router.get("/profile")
def get_profile(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    profile = users.get_profile(db, user.uid)
    if profile is None:
        raise NotFound("Profile not found")
    return _profile_view(db, profile)


@router.get("/subscription")
def subscription_status(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return subscriptions.get_status(db, user.uid)


@router.post("/chat")
def send_message(
    req: MobileChatRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    client: ChatClient = Depends(get_chat_client),
):
    status = subscriptions.get_status(db, user.uid)
    result = chat.run_turn(
        db,
        client,
        user.uid,
        turn_messages(req.messages),
        model_for_tier(status.tier),
        conversation_id=req.conversation_id,
        has_image=req.has_image,
        has_file=req.has_file,
    )
    return {
        "id": result.id,
        "message": {"role": Role.ASSISTANT.value, "content": result.content},
        "conversationId": result.conversation_id,
        "usage": {
            "messagesUsedToday": result.messages_used_today,
            "messagesPerDay": result.messages_per_day,
            "canUploadImages": status.can_upload_images,
            "canUploadFiles": status.can_upload_files,
        },
    }


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


@router.post("/subscribe")
def subscribe(
    req: SubscribeRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    gateway: PaystackClient = Depends(get_payments),
):
    return subscriptions.initialize_payment(db, gateway, user.uid, user.email, req.plan_id, req.callback_url)


@router.post("/verify-payment")
def verify_payment(
    req: VerifyRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    gateway: PaystackClient = Depends(get_payments),
):
    return verify_for_user(db, gateway, user.uid, req.reference)


@router.post("/cancel-subscription")
def cancel_subscription(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return cancel_for_user(db, user.uid)
