from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

import admin
import subscriptions
from database import get_db
from identity import IdentityProvider, get_identity, require_admin
from schemas import ApiModel, SubscriptionPlan, Tier

# Every route here requires the admin claim
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class SetAdminRequest(ApiModel):
    user_id: str
    is_admin: bool


class SetTierRequest(ApiModel):
    user_id: str
    tier: Tier


class BanRequest(ApiModel):
    user_id: str
    banned: bool
    reason: Optional[str] = None


@router.get("/stats")
def dashboard_stats(db: Database = Depends(get_db)):
    return admin.dashboard_stats(db)


@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return admin.list_users(db, page, limit)


@router.get("/users/{uid}")
def user_details(uid: str, db: Database = Depends(get_db)):
    return admin.user_details(db, uid)


@router.post("/users/set-admin")
def set_admin(req: SetAdminRequest, identity: IdentityProvider = Depends(get_identity)):
    admin.set_admin(identity, req.user_id, req.is_admin)
    return {"success": True}


@router.post("/users/set-tier")
def set_tier(req: SetTierRequest, db: Database = Depends(get_db)):
    admin.set_tier(db, req.user_id, req.tier)
    return {"success": True}


@router.post("/users/ban")
def ban_user(
    req: BanRequest,
    db: Database = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    admin.set_ban(db, identity, req.user_id, req.banned, req.reason)
    return {"success": True}


@router.get("/analytics")
def analytics(period: str = "7d", db: Database = Depends(get_db)):
    return admin.analytics(db, period)


@router.get("/logs")
def api_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Database = Depends(get_db),
):
    return admin.api_logs(db, page, limit)


@router.get("/settings")
def get_settings(db: Database = Depends(get_db)):
    return admin.get_settings(db)


@router.put("/settings")
def update_settings(req: admin.SettingsUpdate, db: Database = Depends(get_db)):
    return admin.update_settings(db, req)


@router.get("/revenue")
def revenue(db: Database = Depends(get_db)):
    return admin.revenue_stats(db)


@router.get("/subscriptions/all")
def all_subscriptions(db: Database = Depends(get_db)):
    return subscriptions.list_all(db)


@router.get("/subscriptions/plans")
def list_plans(db: Database = Depends(get_db)):
    return subscriptions.list_plans(db, active_only=False)


@router.post("/subscriptions/plans")
def save_plan(plan: SubscriptionPlan, db: Database = Depends(get_db)):
    return subscriptions.save_plan(db, plan)


@router.delete("/subscriptions/plans/{plan_id}")
def delete_plan(plan_id: str, db: Database = Depends(get_db)):
    subscriptions.delete_plan(db, plan_id)
    return {"deleted": True}
