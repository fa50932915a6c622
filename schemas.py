"""
Database Schemas

Pydantic models for the MongoDB collections. Documents read from the store are
validated into these records (``from_doc``) and written back with ``to_doc``;
the record's ``id`` field is stored as the document ``_id``.

Collection names live in ``database.py``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> str:
    return utcnow().date().isoformat()


def for_store(value: Any) -> Any:
    """Datetimes are kept as naive UTC in the document store."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, dict):
        return {k: for_store(v) for k, v in value.items()}
    if isinstance(value, list):
        return [for_store(v) for v in value]
    return value


def store_now() -> datetime:
    return for_store(utcnow())


# ------------------------
# Enumerations
# ------------------------

class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PlanInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Default daily message quota per tier; the free quota can be overridden
# from the system settings document.
TIER_DAILY_LIMITS: Dict[Tier, int] = {
    Tier.FREE: 10,
    Tier.PRO: 100,
    Tier.ENTERPRISE: 1000,
}

INTERVAL_DAYS: Dict[PlanInterval, int] = {
    PlanInterval.MONTHLY: 30,
    PlanInterval.YEARLY: 365,
}


# ------------------------
# Base models
# ------------------------

class ApiModel(BaseModel):
    """Request/response bodies use camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


class Document(ApiModel):
    """A record mirrored 1:1 into a collection."""

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value: Any) -> Any:
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]):
        if not doc:
            return None
        data = dict(doc)
        if "_id" in data:
            data.setdefault(cls._key_field(), str(data.pop("_id")))
        return cls.model_validate(data)

    def to_doc(self) -> Dict[str, Any]:
        data = for_store(self.model_dump(mode="python"))
        key = data.pop(self._key_field())
        if key is not None:
            data["_id"] = key
        return data

    @classmethod
    def _key_field(cls) -> str:
        return "id"


# ------------------------
# Collections
# ------------------------

class UserProfile(Document):
    uid: str
    email: str = ""
    display_name: str = "User"
    avatar_url: Optional[str] = None
    tier: Tier = Tier.FREE
    messages_used_today: int = Field(0, ge=0)
    total_messages: int = Field(0, ge=0)
    last_reset_date: Optional[str] = Field(None, description="YYYY-MM-DD (UTC) of the last daily reset")
    is_banned: bool = False
    ban_reason: Optional[str] = None
    subscription_id: Optional[str] = None
    can_upload_images: bool = False
    can_upload_files: bool = False
    messages_per_day: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def _key_field(cls) -> str:
        return "uid"


class Message(Document):
    id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Conversation(Document):
    id: str
    user_id: str
    title: str = "New Chat"
    messages: List[Message] = Field(default_factory=list)
    model: str = "unknown"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SubscriptionPlan(Document):
    id: str = ""
    name: str
    tier: Tier
    price: int = Field(..., ge=0, description="Amount in minor currency units (kobo/cents)")
    currency: str = "NGN"
    interval: PlanInterval = PlanInterval.MONTHLY
    features: List[str] = Field(default_factory=list)
    messages_per_day: int = Field(20, ge=0)
    can_upload_images: bool = False
    can_upload_files: bool = False
    is_active: bool = True
    updated_at: Optional[datetime] = None


class Subscription(Document):
    id: str
    user_id: str
    plan_id: str
    plan_name: str = ""
    tier: Tier = Tier.FREE
    status: SubscriptionStatus
    paystack_ref: Optional[str] = None
    amount: int = 0
    currency: str = "NGN"
    start_date: datetime
    end_date: datetime
    auto_renew: bool = True
    cancelled_at: Optional[datetime] = None


class Transaction(Document):
    reference: str
    user_id: str
    plan_id: str
    amount: int
    currency: str = "NGN"
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    verified_at: Optional[datetime] = None

    @classmethod
    def _key_field(cls) -> str:
        return "reference"


class UsageLog(Document):
    id: Optional[str] = None
    user_id: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class RateLimits(ApiModel):
    free_per_minute: int = 10
    pro_per_minute: int = 30
    enterprise_per_minute: int = 100


class SystemSettings(Document):
    maintenance_mode: bool = False
    registration_enabled: bool = True
    default_tier: Tier = Tier.FREE
    enabled_models: List[str] = Field(
        default_factory=lambda: ["openai/gpt-4o", "openai/gpt-4o-mini", "anthropic/claude-3.5-sonnet"]
    )
    free_tier_daily_limit: int = Field(TIER_DAILY_LIMITS[Tier.FREE], ge=0)
    rate_limits: RateLimits = Field(default_factory=RateLimits)

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]):
        if not doc:
            return cls()
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls.model_validate(data)

    def to_doc(self) -> Dict[str, Any]:
        return for_store(self.model_dump(mode="python"))
