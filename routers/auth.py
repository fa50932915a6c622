import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

import users
from database import get_db, load_settings
from errors import Forbidden
from identity import IdentityProvider, get_identity
from schemas import ApiModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterRequest(ApiModel):
    id_token: str
    display_name: Optional[str] = None


@router.post("/register", status_code=201)
def register(
    req: RegisterRequest,
    db: Database = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    verified = identity.verify(req.id_token)
    if not load_settings(db).registration_enabled:
        logger.info("Registration refused for %s: registration disabled", verified.uid)
        raise Forbidden("Registration is currently disabled")
    users.create_profile(db, verified.uid, verified.email or "", req.display_name or verified.name or "User")
    return {"success": True, "userId": verified.uid, "message": "User registered successfully"}


@router.post("/verify")
def verify(req: RegisterRequest, identity: IdentityProvider = Depends(get_identity)):
    verified = identity.verify(req.id_token)
    return {"valid": True, "uid": verified.uid, "email": verified.email}
