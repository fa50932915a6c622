import os
import logging
from typing import Any, Dict, Optional

import firebase_admin
from fastapi import Depends, Header, Request
from firebase_admin import auth, credentials
from firebase_admin.exceptions import FirebaseError
from pydantic import BaseModel

from errors import Forbidden, NotFound, Unauthorized, UpstreamError

logger = logging.getLogger(__name__)


class VerifiedIdentity(BaseModel):
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    is_admin: bool = False


class IdentityProvider:
    """Firebase Auth handle: token verification and user administration."""

    def __init__(self, project_id: Optional[str] = None, credentials_path: Optional[str] = None):
        self.project_id = project_id
        self.credentials_path = credentials_path
        self._app: Optional[firebase_admin.App] = None

    def initialize(self) -> None:
        if self._app is not None:
            return
        if self.credentials_path and os.path.exists(self.credentials_path):
            logger.info("Using Firebase credentials from file: %s", self.credentials_path)
            cred = credentials.Certificate(self.credentials_path)
        else:
            logger.info("Using Application Default Credentials")
            cred = credentials.ApplicationDefault()
        options = {"projectId": self.project_id} if self.project_id else None
        self._app = firebase_admin.initialize_app(cred, options, name="zlma")
        logger.info("Firebase initialized with project: %s", self.project_id or "<default>")

    def close(self) -> None:
        if self._app is not None:
            firebase_admin.delete_app(self._app)
            self._app = None

    @property
    def app(self) -> firebase_admin.App:
        if self._app is None:
            raise UpstreamError("Identity provider not initialized")
        return self._app

    def verify(self, id_token: str) -> VerifiedIdentity:
        try:
            claims: Dict[str, Any] = auth.verify_id_token(id_token, app=self.app)
        except (ValueError, FirebaseError) as e:
            logger.info("Rejected identity token: %s", str(e)[:120])
            raise Unauthorized("Invalid or expired token")
        return VerifiedIdentity(
            uid=claims["uid"],
            email=claims.get("email"),
            name=claims.get("name"),
            is_admin=claims.get("admin") is True,
        )

    def set_admin(self, uid: str, is_admin: bool) -> None:
        try:
            auth.set_custom_user_claims(uid, {"admin": is_admin}, app=self.app)
        except auth.UserNotFoundError:
            raise NotFound("User not found")

    def set_disabled(self, uid: str, disabled: bool) -> None:
        try:
            auth.update_user(uid, disabled=disabled, app=self.app)
        except auth.UserNotFoundError:
            raise NotFound("User not found")

    def delete_user(self, uid: str) -> None:
        try:
            auth.delete_user(uid, app=self.app)
        except auth.UserNotFoundError:
            logger.warning("Identity user %s already removed", uid)


# ------------------------
# Request dependencies
# ------------------------

def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise Unauthorized("Not authenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Invalid auth header")
    return token.strip()


def require_user(
    token: str = Depends(bearer_token),
    identity: IdentityProvider = Depends(get_identity),
) -> VerifiedIdentity:
    return identity.verify(token)


def require_admin(user: VerifiedIdentity = Depends(require_user)) -> VerifiedIdentity:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
