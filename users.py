import logging
from datetime import datetime, timedelta
from typing import Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import CONVERSATIONS, USERS, touch
from errors import Forbidden, NotFound, QuotaExceeded
from schemas import (
    ApiModel,
    SubscriptionPlan,
    SystemSettings,
    TIER_DAILY_LIMITS,
    Tier,
    UserProfile,
    store_now,
    today,
    utcnow,
)

logger = logging.getLogger(__name__)

PROFILE_MISSING = "User profile not found. Please register first."


class UserUsage(ApiModel):
    messages_used_today: int
    daily_limit: int
    total_messages: int
    tier: Tier
    reset_time: datetime


# ------------------------
# Profiles
# ------------------------

def get_profile(db: Database, uid: str) -> Optional[UserProfile]:
    return UserProfile.from_doc(db[USERS].find_one({"_id": uid}))


def require_profile(db: Database, uid: str) -> UserProfile:
    profile = get_profile(db, uid)
    if profile is None:
        raise NotFound(PROFILE_MISSING)
    return profile


def create_profile(db: Database, uid: str, email: str, display_name: str) -> UserProfile:
    """Create the profile on first registration; an existing profile is kept as is."""
    profile = UserProfile(uid=uid, email=email or "", display_name=display_name or "User", last_reset_date=today())
    doc = profile.to_doc()
    doc.pop("_id")
    result = db[USERS].update_one({"_id": uid}, {"$setOnInsert": doc}, upsert=True)
    if result.upserted_id is not None:
        logger.info("Created profile for %s", uid)
    return get_profile(db, uid)


def get_or_create_profile(db: Database, uid: str, email: Optional[str]) -> UserProfile:
    profile = get_profile(db, uid)
    if profile is not None:
        return profile
    display_name = email.split("@")[0] if email else "User"
    return create_profile(db, uid, email or "", display_name)


def update_profile(
    db: Database, uid: str, display_name: Optional[str] = None, avatar_url: Optional[str] = None
) -> UserProfile:
    updates = {"last_active_at": store_now()}
    if display_name is not None:
        updates["display_name"] = display_name
    if avatar_url is not None:
        updates["avatar_url"] = avatar_url
    if not touch(db, USERS, uid, updates):
        raise NotFound(PROFILE_MISSING)
    return get_profile(db, uid)


def set_tier(db: Database, uid: str, tier: Tier) -> None:
    if not touch(db, USERS, uid, {"tier": Tier(tier).value}):
        raise NotFound("User not found")


def set_ban(db: Database, uid: str, banned: bool, reason: Optional[str] = None) -> None:
    updates = {"is_banned": banned}
    if not banned:
        updates["ban_reason"] = None
    elif reason is not None:
        updates["ban_reason"] = reason
    if not touch(db, USERS, uid, updates):
        raise NotFound("User not found")


def apply_plan(db: Database, uid: str, plan: SubscriptionPlan, subscription_id: str) -> None:
    """Grant a plan's tier and entitlements to the user."""
    touch(
        db,
        USERS,
        uid,
        {
            "tier": plan.tier,
            "subscription_id": subscription_id,
            "can_upload_images": plan.can_upload_images,
            "can_upload_files": plan.can_upload_files,
            "messages_per_day": plan.messages_per_day,
        },
    )


def revert_to_free(db: Database, uid: str) -> None:
    touch(
        db,
        USERS,
        uid,
        {
            "tier": Tier.FREE.value,
            "subscription_id": None,
            "can_upload_images": False,
            "can_upload_files": False,
            "messages_per_day": None,
        },
    )


def delete_account(db: Database, identity, uid: str) -> None:
    db[USERS].delete_one({"_id": uid})
    removed = db[CONVERSATIONS].delete_many({"user_id": uid}).deleted_count
    identity.delete_user(uid)
    logger.info("Deleted account %s (%d conversations)", uid, removed)


# ------------------------
# Daily quota
# ------------------------

def daily_limit_for(tier: str, settings: SystemSettings) -> int:
    tier = Tier(tier)
    if tier is Tier.FREE:
        return settings.free_tier_daily_limit
    return TIER_DAILY_LIMITS[tier]


def used_today(profile: UserProfile) -> int:
    """Counter value for today; a counter last reset on an earlier day reads as zero."""
    if profile.last_reset_date != today():
        return 0
    return profile.messages_used_today


def next_reset_time() -> datetime:
    now = utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def reset_daily_if_needed(db: Database, uid: str) -> None:
    t = today()
    db[USERS].update_one(
        {"_id": uid, "last_reset_date": {"$ne": t}},
        {"$set": {"messages_used_today": 0, "last_reset_date": t}},
    )


def consume_message(db: Database, uid: str, limit: int) -> UserProfile:
    """Atomically reserve one message from today's quota.

    The increment only matches while the user is not banned and is still
    under ``limit``, so concurrent requests cannot push the counter past it.
    """
    for _ in range(2):
        reset_daily_if_needed(db, uid)
        doc = db[USERS].find_one_and_update(
            {
                "_id": uid,
                "is_banned": {"$ne": True},
                "last_reset_date": today(),
                "messages_used_today": {"$lt": limit},
            },
            {
                "$inc": {"messages_used_today": 1, "total_messages": 1},
                "$set": {"last_active_at": store_now()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            return UserProfile.from_doc(doc)

        profile = get_profile(db, uid)
        if profile is None:
            raise Forbidden(PROFILE_MISSING)
        if profile.is_banned:
            raise Forbidden("Your account has been suspended" + (f": {profile.ban_reason}" if profile.ban_reason else ""))
        if profile.last_reset_date == today():
            break
        # the day rolled over between the reset and the increment
    raise QuotaExceeded()


def release_message(db: Database, uid: str) -> None:
    """Give back a reservation made by ``consume_message``."""
    db[USERS].update_one(
        {"_id": uid, "messages_used_today": {"$gt": 0}},
        {"$inc": {"messages_used_today": -1, "total_messages": -1}},
    )


def get_usage(db: Database, uid: str, daily_limit: int) -> UserUsage:
    profile = require_profile(db, uid)
    return UserUsage(
        messages_used_today=used_today(profile),
        daily_limit=daily_limit,
        total_messages=profile.total_messages,
        tier=profile.tier,
        reset_time=next_reset_time(),
    )
