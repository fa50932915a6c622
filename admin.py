"""
Admin dashboard queries and user moderation.

Aggregates are computed in Python over the relevant documents; the
collections are small enough for the dashboard and this keeps the queries
portable across store versions.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import Field, ValidationError
from pymongo import DESCENDING
from pymongo.database import Database

import users
from database import (
    CONVERSATIONS,
    SETTINGS,
    SUBSCRIPTIONS,
    SYSTEM_SETTINGS_ID,
    TRANSACTIONS,
    USAGE_LOGS,
    USERS,
    load_settings,
)
from errors import BadRequest, NotFound
from identity import IdentityProvider
from schemas import (
    ApiModel,
    RateLimits,
    SubscriptionStatus,
    SystemSettings,
    Tier,
    TransactionStatus,
    UsageLog,
    UserProfile,
    for_store,
    utcnow,
)

logger = logging.getLogger(__name__)

ANALYTICS_PERIODS = {"7d": 7, "30d": 30, "90d": 90}
RECENT_USAGE_LOGS = 100
TOP_MODELS = 5


class TierBreakdown(ApiModel):
    free: int = 0
    pro: int = 0
    enterprise: int = 0


class DashboardStats(ApiModel):
    total_users: int
    active_users_today: int
    total_messages: int
    messages_today: int
    new_users_today: int
    new_users_this_week: int
    tier_breakdown: TierBreakdown


class DailyCount(ApiModel):
    date: str
    count: int


class HourlyCount(ApiModel):
    hour: int
    count: int


class ModelUsage(ApiModel):
    model: str
    count: int
    percentage: float


class Analytics(ApiModel):
    period: str
    daily_messages: List[DailyCount]
    daily_users: List[DailyCount]
    top_models: List[ModelUsage]
    peak_hours: List[HourlyCount]


class UserSummary(ApiModel):
    uid: str
    email: str
    display_name: str
    tier: Tier
    total_messages: int
    is_banned: bool
    created_at: datetime
    last_active_at: datetime


class UserDetails(UserSummary):
    avatar_url: Optional[str] = None
    messages_used_today: int
    ban_reason: Optional[str] = None
    subscription_id: Optional[str] = None
    conversations_count: int
    recent_token_usage: int


class SettingsUpdate(ApiModel):
    maintenance_mode: Optional[bool] = None
    registration_enabled: Optional[bool] = None
    default_tier: Optional[Tier] = None
    enabled_models: Optional[List[str]] = None
    free_tier_daily_limit: Optional[int] = Field(None, ge=0)
    rate_limits: Optional[RateLimits] = None


class RevenueStats(ApiModel):
    revenue_by_currency: Dict[str, int]
    successful_transactions: int
    active_subscriptions: int
    subscriptions_by_tier: TierBreakdown


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


# ------------------------
# Dashboard
# ------------------------

def dashboard_stats(db: Database) -> DashboardStats:
    now = utcnow()
    day_start = for_store(_start_of_day(now))
    week_ago = for_store(now - timedelta(days=7))

    tiers = TierBreakdown()
    active_today = new_today = new_week = 0
    for doc in db[USERS].find({}, {"tier": 1, "created_at": 1, "last_active_at": 1}):
        tier = doc.get("tier") or Tier.FREE.value
        if tier in TierBreakdown.model_fields:
            setattr(tiers, tier, getattr(tiers, tier) + 1)
        last_active = for_store(doc.get("last_active_at"))
        created = for_store(doc.get("created_at"))
        if last_active and last_active >= day_start:
            active_today += 1
        if created and created >= day_start:
            new_today += 1
        if created and created >= week_ago:
            new_week += 1

    return DashboardStats(
        total_users=db[USERS].count_documents({}),
        active_users_today=active_today,
        total_messages=db[USAGE_LOGS].count_documents({}),
        messages_today=db[USAGE_LOGS].count_documents({"timestamp": {"$gte": day_start}}),
        new_users_today=new_today,
        new_users_this_week=new_week,
        tier_breakdown=tiers,
    )


def analytics(db: Database, period: str) -> Analytics:
    if period not in ANALYTICS_PERIODS:
        period = "7d"
    since = for_store(utcnow() - timedelta(days=ANALYTICS_PERIODS[period]))

    messages_by_date: Counter = Counter()
    users_by_date: Dict[str, set] = defaultdict(set)
    models: Counter = Counter()
    hours: Counter = Counter()
    total = 0
    for doc in db[USAGE_LOGS].find({"timestamp": {"$gte": since}}):
        log = UsageLog.from_doc(doc)
        date = log.timestamp.date().isoformat()
        messages_by_date[date] += 1
        users_by_date[date].add(log.user_id)
        models[log.model or "unknown"] += 1
        hours[log.timestamp.hour] += 1
        total += 1

    denominator = max(total, 1)
    return Analytics(
        period=period,
        daily_messages=[DailyCount(date=d, count=c) for d, c in sorted(messages_by_date.items())],
        daily_users=[DailyCount(date=d, count=len(u)) for d, u in sorted(users_by_date.items())],
        top_models=[
            ModelUsage(model=m, count=c, percentage=round(c * 100.0 / denominator, 2))
            for m, c in models.most_common(TOP_MODELS)
        ],
        peak_hours=[HourlyCount(hour=h, count=c) for h, c in sorted(hours.items())],
    )


def api_logs(db: Database, page: int = 1, limit: int = 50) -> Dict[str, Any]:
    page, limit = max(page, 1), max(limit, 1)
    cursor = db[USAGE_LOGS].find().sort("timestamp", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "logs": [UsageLog.from_doc(d).model_dump(by_alias=True, mode="json") for d in cursor],
        "page": page,
        "limit": limit,
    }


# ------------------------
# Users
# ------------------------

def list_users(db: Database, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    page, limit = max(page, 1), max(limit, 1)
    total = db[USERS].count_documents({})
    cursor = db[USERS].find().sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    rows = []
    for doc in cursor:
        profile = UserProfile.from_doc(doc)
        rows.append(UserSummary(**profile.model_dump(include=set(UserSummary.model_fields))))
    return {
        "users": [r.model_dump(by_alias=True, mode="json") for r in rows],
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit,
    }


def user_details(db: Database, uid: str) -> UserDetails:
    profile = users.get_profile(db, uid)
    if profile is None:
        raise NotFound("User not found")
    recent = db[USAGE_LOGS].find({"user_id": uid}, {"total_tokens": 1}).sort("timestamp", DESCENDING).limit(
        RECENT_USAGE_LOGS
    )
    return UserDetails(
        **profile.model_dump(include=set(UserDetails.model_fields)),
        conversations_count=db[CONVERSATIONS].count_documents({"user_id": uid}),
        recent_token_usage=sum(d.get("total_tokens") or 0 for d in recent),
    )


def set_admin(identity: IdentityProvider, uid: str, is_admin: bool) -> None:
    identity.set_admin(uid, is_admin)
    logger.info("Admin claim for %s set to %s", uid, is_admin)


def set_tier(db: Database, uid: str, tier: Tier) -> None:
    users.set_tier(db, uid, tier)
    logger.info("Tier for %s set to %s", uid, Tier(tier).value)


def set_ban(db: Database, identity: IdentityProvider, uid: str, banned: bool, reason: Optional[str] = None) -> None:
    users.set_ban(db, uid, banned, reason)
    identity.set_disabled(uid, banned)
    logger.info("User %s %s", uid, "banned" if banned else "unbanned")


# ------------------------
# Settings
# ------------------------

def get_settings(db: Database) -> SystemSettings:
    return load_settings(db)


def update_settings(db: Database, update: SettingsUpdate) -> SystemSettings:
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    current = load_settings(db)
    if not changes:
        return current
    try:
        merged = SystemSettings.model_validate({**current.model_dump(), **changes})
    except ValidationError as e:
        raise BadRequest(f"Invalid settings: {e.errors()[0]['msg']}")
    db[SETTINGS].replace_one({"_id": SYSTEM_SETTINGS_ID}, merged.to_doc(), upsert=True)
    logger.info("System settings updated: %s", ", ".join(sorted(changes)))
    return merged


# ------------------------
# Revenue
# ------------------------

def revenue_stats(db: Database) -> RevenueStats:
    revenue: Dict[str, int] = defaultdict(int)
    successful = 0
    for doc in db[TRANSACTIONS].find({"status": TransactionStatus.SUCCESS.value}, {"amount": 1, "currency": 1}):
        revenue[doc.get("currency") or "NGN"] += int(doc.get("amount") or 0)
        successful += 1

    by_tier = TierBreakdown()
    active = 0
    for doc in db[SUBSCRIPTIONS].find({"status": SubscriptionStatus.ACTIVE.value}, {"tier": 1}):
        tier = doc.get("tier")
        if tier in TierBreakdown.model_fields:
            setattr(by_tier, tier, getattr(by_tier, tier) + 1)
        active += 1

    return RevenueStats(
        revenue_by_currency=dict(revenue),
        successful_transactions=successful,
        active_subscriptions=active,
        subscriptions_by_tier=by_tier,
    )
