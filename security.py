import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from bson.objectid import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import settings
from database import get_db
from utils import serialize_doc

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

PRIVATE_USER_FIELDS = (
    "password_hash",
    "password_reset_token",
    "password_reset_expires",
    "failed_login_attempts",
    "account_locked_until",
)


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_token(user: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=settings.JWT_EXPIRES_DAYS)
    to_encode = {"id": str(user["_id"]), "email": user["email"], "role": user.get("role", "user"), "exp": exp}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def public_user(user: dict) -> dict:
    doc = {k: v for k, v in user.items() if k not in PRIVATE_USER_FIELDS}
    return serialize_doc(doc)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db=Depends(get_db),
) -> dict:
    """Resolve the bearer token to the raw user document."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated.")
    return user


def require_roles(*roles: str):
    def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Access denied. Insufficient permissions.")
        return user

    return dependency


def require_seller(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") not in ("seller", "admin"):
        raise HTTPException(status_code=403, detail="Seller access required.")
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required.")
    return user


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"
