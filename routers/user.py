from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

import subscriptions
import users
from database import get_db
from identity import IdentityProvider, VerifiedIdentity, get_identity, require_user
from schemas import ApiModel

router = APIRouter(prefix="/api/user", tags=["user"])


class UpdateProfileRequest(ApiModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


@router.get("/profile")
def get_profile(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    return users.require_profile(db, user.uid)


@router.put("/profile")
def update_profile(
    req: UpdateProfileRequest,
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
):
    users.update_profile(db, user.uid, display_name=req.display_name, avatar_url=req.avatar_url)
    return {"updated": True}


@router.get("/usage")
def get_usage(user: VerifiedIdentity = Depends(require_user), db: Database = Depends(get_db)):
    status = subscriptions.get_status(db, user.uid)
    return users.get_usage(db, user.uid, status.messages_per_day)


@router.delete("/account")
def delete_account(
    user: VerifiedIdentity = Depends(require_user),
    db: Database = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    users.delete_account(db, identity, user.uid)
    return {"deleted": True}
