from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from pymongo.database import Database

import subscriptions
from database import get_db
from errors import Forbidden
from identity import VerifiedIdentity, require_user
from paystack import PaystackClient, get_payments
from schemas import ApiModel

router = APIRouter(tags=["subscriptions"])


class InitPaymentRequest(ApiModel):
    plan_id: str
    callback_url: Optional[str] = None


class VerifyPaymentRequest(ApiModel):
    reference: str


def verify_for_user(db: Database, gateway: PaystackClient, uid: str, reference: str) -> dict:
    """Activate ``reference`` and return the caller's subscription and status."""
    subscription = subscriptions.activate(db, gateway, reference)
    if subscription.user_id != uid:
        raise Forbidden("Subscription does not belong to this user")
    return {"success": True, "subscription": subscription, "status": subscriptions.get_status(db, uid)}


def cancel_for_user(db: Database, uid: str) -> dict:
    subscription = subscriptions.cancel(db, uid)
    return {
        "success": True,
        "message": f"Subscription will remain active until {subscription.end_date.isoformat()}",
        "subscription": subscription,
    }


@router.get("/api/subscriptions/plans")
def list_plans(db: Database = Depends(get_db)):
    return subscriptions.list_plans(db)


@router.get("/api/subscriptions/paystack-key")
def paystack_key(gateway: PaystackClient = Depends(get_payments)):
    return {"publicKey": gateway.public_key}


@router.get("/api/subscriptions/my-subscription")
def my_subscription(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return {"subscription": subscriptions.get_active_subscription(db, user.uid)}


@router.get("/api/subscriptions/status")
def subscription_status(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return subscriptions.get_status(db, user.uid)


@router.post("/api/subscriptions/init-payment")
def init_payment(
    req: InitPaymentRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    gateway: PaystackClient = Depends(get_payments),
):
    return subscriptions.initialize_payment(db, gateway, user.uid, user.email, req.plan_id, req.callback_url)


@router.post("/api/subscriptions/verify-payment")
def verify_payment(
    req: VerifyPaymentRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    gateway: PaystackClient = Depends(get_payments),
):
    return verify_for_user(db, gateway, user.uid, req.reference)


@router.post("/api/subscriptions/cancel")
def cancel_subscription(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return cancel_for_user(db, user.uid)


@router.post("/api/webhooks/paystack")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None),
    db: Database = Depends(get_db),
    gateway: PaystackClient = Depends(get_payments),
):
    body = await request.body()
    return await run_in_threadpool(subscriptions.handle_webhook, db, gateway, body, x_paystack_signature)
