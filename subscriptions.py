"""
Subscription plans, payment activation and per-user entitlements.

Payment lifecycle: ``initialize_payment`` records a pending transaction keyed
by a generated reference; ``activate`` verifies it with the gateway, claims
the transaction (pending -> success) with a conditional write, creates the
subscription and grants the plan to the user. A subscription past its end
date is marked expired the next time it is read.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

import users
from database import PLANS, SUBSCRIPTIONS, TRANSACTIONS, create_document, load_settings
from errors import BadRequest, NotFound, ServiceError, Unauthorized
from paystack import PaystackClient, generate_reference
from schemas import (
    INTERVAL_DAYS,
    ApiModel,
    PlanInterval,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    Tier,
    Transaction,
    TransactionStatus,
    store_now,
    utcnow,
)

logger = logging.getLogger(__name__)

# Daily quota for a subscription whose plan document has been removed
ORPHAN_PLAN_DAILY_LIMIT = 100

# Statuses that still grant the plan until end_date
ENTITLED_STATUSES = [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELLED.value]


class Entitlements(ApiModel):
    tier: Tier
    is_subscribed: bool
    can_chat: bool
    can_upload_images: bool
    can_upload_files: bool
    messages_per_day: int
    messages_used_today: int
    subscription_end_date: Optional[datetime] = None
    plan_name: Optional[str] = None


class PaymentInit(ApiModel):
    authorization_url: str
    reference: str


# ------------------------
# Plans
# ------------------------

def list_plans(db: Database, active_only: bool = True) -> List[SubscriptionPlan]:
    filt = {"is_active": True} if active_only else {}
    return [SubscriptionPlan.from_doc(d) for d in db[PLANS].find(filt).sort("price", ASCENDING)]


def get_plan(db: Database, plan_id: str) -> Optional[SubscriptionPlan]:
    return SubscriptionPlan.from_doc(db[PLANS].find_one({"_id": plan_id}))


def save_plan(db: Database, plan: SubscriptionPlan) -> SubscriptionPlan:
    plan = plan.model_copy(update={"id": plan.id or str(uuid.uuid4()), "updated_at": utcnow()})
    doc = plan.to_doc()
    db[PLANS].replace_one({"_id": doc["_id"]}, doc, upsert=True)
    logger.info("Saved plan %s (%s)", plan.id, plan.name)
    return plan


def delete_plan(db: Database, plan_id: str) -> None:
    if db[PLANS].delete_one({"_id": plan_id}).deleted_count == 0:
        raise NotFound("Plan not found")
    logger.info("Deleted plan %s", plan_id)


# ------------------------
# Subscriptions
# ------------------------

def expire_stale(db: Database, uid: str) -> int:
    """Mark the user's subscriptions past their end date as expired.

    When that leaves the user with nothing entitled, the user reverts to the
    free tier.
    """
    result = db[SUBSCRIPTIONS].update_many(
        {"user_id": uid, "status": {"$in": ENTITLED_STATUSES}, "end_date": {"$lt": store_now()}},
        {"$set": {"status": SubscriptionStatus.EXPIRED.value}},
    )
    if result.modified_count:
        logger.info("Expired %d subscription(s) for %s", result.modified_count, uid)
        if db[SUBSCRIPTIONS].count_documents({"user_id": uid, "status": {"$in": ENTITLED_STATUSES}}) == 0:
            users.revert_to_free(db, uid)
    return result.modified_count


def get_active_subscription(db: Database, uid: str) -> Optional[Subscription]:
    """The subscription currently granting the user a plan, if any."""
    expire_stale(db, uid)
    doc = db[SUBSCRIPTIONS].find_one(
        {"user_id": uid, "status": {"$in": ENTITLED_STATUSES}},
        sort=[("end_date", DESCENDING)],
    )
    return Subscription.from_doc(doc)


def get_status(db: Database, uid: str) -> Entitlements:
    subscription = get_active_subscription(db, uid)
    profile = users.get_profile(db, uid)
    settings = load_settings(db)

    if profile is None:
        return Entitlements(
            tier=Tier.FREE,
            is_subscribed=False,
            can_chat=True,
            can_upload_images=False,
            can_upload_files=False,
            messages_per_day=users.daily_limit_for(Tier.FREE, settings),
            messages_used_today=0,
        )

    used = users.used_today(profile)

    if subscription is not None:
        plan = get_plan(db, subscription.plan_id)
        limit = plan.messages_per_day if plan else ORPHAN_PLAN_DAILY_LIMIT
        return Entitlements(
            tier=subscription.tier,
            is_subscribed=True,
            can_chat=not profile.is_banned and used < limit,
            can_upload_images=plan.can_upload_images if plan else False,
            can_upload_files=plan.can_upload_files if plan else False,
            messages_per_day=limit,
            messages_used_today=used,
            subscription_end_date=subscription.end_date,
            plan_name=subscription.plan_name,
        )

    limit = users.daily_limit_for(profile.tier, settings)
    return Entitlements(
        tier=profile.tier,
        is_subscribed=False,
        can_chat=not profile.is_banned and used < limit,
        can_upload_images=profile.can_upload_images,
        can_upload_files=profile.can_upload_files,
        messages_per_day=limit,
        messages_used_today=used,
    )


def list_all(db: Database, limit: int = 500) -> List[Subscription]:
    return [Subscription.from_doc(d) for d in db[SUBSCRIPTIONS].find().sort("start_date", DESCENDING).limit(limit)]


def cancel(db: Database, uid: str) -> Subscription:
    """Stop auto-renewal; the plan stays in effect until its end date."""
    subscription = get_active_subscription(db, uid)
    if subscription is None or subscription.status != SubscriptionStatus.ACTIVE.value:
        raise NotFound("No active subscription found")
    doc = db[SUBSCRIPTIONS].find_one_and_update(
        {"_id": subscription.id, "status": SubscriptionStatus.ACTIVE.value},
        {
            "$set": {
                "status": SubscriptionStatus.CANCELLED.value,
                "auto_renew": False,
                "cancelled_at": store_now(),
            }
        },
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("No active subscription found")
    logger.info("Cancelled subscription %s for %s", subscription.id, uid)
    return Subscription.from_doc(doc)


# ------------------------
# Payments
# ------------------------

def initialize_payment(
    db: Database,
    gateway: PaystackClient,
    uid: str,
    email: Optional[str],
    plan_id: str,
    callback_url: Optional[str],
) -> PaymentInit:
    if not email:
        raise BadRequest("Email required for payment")
    plan = get_plan(db, plan_id)
    if plan is None or not plan.is_active:
        raise NotFound("Plan not found")

    reference = generate_reference()
    data = gateway.initialize(
        email=email,
        amount=plan.price,
        currency=plan.currency,
        reference=reference,
        callback_url=callback_url,
        metadata={"user_id": uid, "plan_id": plan.id, "plan_name": plan.name},
    )
    create_document(
        db,
        TRANSACTIONS,
        Transaction(reference=reference, user_id=uid, plan_id=plan.id, amount=plan.price, currency=plan.currency),
    )
    logger.info("Initialized payment %s for %s (plan %s)", reference, uid, plan.id)
    return PaymentInit(authorization_url=data.get("authorization_url", ""), reference=reference)


def _subscription_for_reference(db: Database, reference: str) -> Optional[Subscription]:
    return Subscription.from_doc(db[SUBSCRIPTIONS].find_one({"paystack_ref": reference}))


def activate(db: Database, gateway: PaystackClient, reference: str) -> Subscription:
    """Verify a payment and turn it into an active subscription.

    Processing the same reference again returns the subscription created
    the first time.
    """
    txn = Transaction.from_doc(db[TRANSACTIONS].find_one({"_id": reference}))
    if txn is None:
        raise NotFound("Transaction not found")

    if txn.status == TransactionStatus.SUCCESS.value:
        existing = _subscription_for_reference(db, reference)
        if existing is not None:
            return existing

    verification = gateway.verify(reference)
    if verification.get("status") != "success":
        raise BadRequest(f"Payment verification failed: {verification.get('gateway_response') or verification.get('status')}")
    if int(verification.get("amount") or 0) < txn.amount or (verification.get("currency") or txn.currency) != txn.currency:
        logger.warning("Payment %s amount/currency mismatch: %s", reference, verification)
        raise BadRequest("Payment amount does not match the plan price")

    plan = get_plan(db, txn.plan_id)
    if plan is None:
        raise NotFound("Plan not found")

    claimed = db[TRANSACTIONS].find_one_and_update(
        {"_id": reference, "status": TransactionStatus.PENDING.value},
        {"$set": {"status": TransactionStatus.SUCCESS.value, "verified_at": store_now()}},
    )
    if claimed is None:
        existing = _subscription_for_reference(db, reference)
        if existing is not None:
            return existing
        raise BadRequest("Transaction already processed")

    now = utcnow()
    subscription = Subscription(
        id=str(uuid.uuid4()),
        user_id=txn.user_id,
        plan_id=plan.id,
        plan_name=plan.name,
        tier=plan.tier,
        status=SubscriptionStatus.ACTIVE,
        paystack_ref=reference,
        amount=plan.price,
        currency=plan.currency,
        start_date=now,
        end_date=now + timedelta(days=INTERVAL_DAYS[PlanInterval(plan.interval)]),
        auto_renew=True,
    )
    create_document(db, SUBSCRIPTIONS, subscription)
    users.apply_plan(db, txn.user_id, plan, subscription.id)
    logger.info("Activated subscription %s (%s) for %s", subscription.id, plan.tier, txn.user_id)
    return subscription


def handle_webhook(db: Database, gateway: PaystackClient, body: bytes, signature: Optional[str]) -> dict:
    if not gateway.verify_signature(body, signature):
        logger.warning("Rejected Paystack webhook with invalid signature")
        raise Unauthorized("Invalid webhook signature")
    try:
        event = json.loads(body)
    except ValueError:
        raise BadRequest("Malformed webhook payload")

    if event.get("event") == "charge.success":
        reference = (event.get("data") or {}).get("reference")
        if reference and db[TRANSACTIONS].count_documents({"_id": reference}):
            try:
                activate(db, gateway, reference)
            except ServiceError as e:
                # acknowledged anyway; the client can retry through verify-payment
                logger.warning("Webhook activation of %s failed: %s", reference, e.message)
        else:
            logger.info("Webhook charge.success for unknown reference %s", reference)
    return {"received": True}
