import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, EmailStr, Field

import notifications
import settings
from database import create_document, get_db
from schemas import User as UserSchema
from security import create_token, get_current_user, hash_password, public_user, verify_password
from utils import as_utc, now, ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ----------------------- Models -----------------------
class RegisterBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordBody(BaseModel):
    email: EmailStr


class ResetPasswordBody(BaseModel):
    password: str = Field(..., min_length=6)


class ChangePasswordBody(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _session_response(user: dict, message: str) -> dict:
    return ok({"token": create_token(user), "user": public_user(user)}, message)


# ----------------------- Routes -----------------------
@router.post("/register", status_code=201)
def register(body: RegisterBody, db=Depends(get_db)):
    email = body.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists with this email")
    user = UserSchema(
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        phone=body.phone,
    )
    user_id = create_document(db, "user", user)
    doc = db["user"].find_one({"_id": ObjectId(user_id)})
    logger.info("Registered user %s", user_id)
    return _session_response(doc, "User registered successfully")


@router.post("/login")
def login(body: LoginBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    locked_until = as_utc(user.get("account_locked_until"))
    if locked_until and locked_until > now():
        raise HTTPException(status_code=423, detail="Account is temporarily locked. Try again later.")

    if not verify_password(body.password, user.get("password_hash")):
        attempts = user.get("failed_login_attempts", 0) + 1
        update = {"failed_login_attempts": attempts}
        if attempts >= settings.MAX_LOGIN_ATTEMPTS:
            update["failed_login_attempts"] = 0
            update["account_locked_until"] = now() + timedelta(minutes=settings.LOCK_MINUTES)
            logger.warning("Locked account %s after %d failed logins", user["_id"], attempts)
        db["user"].update_one({"_id": user["_id"]}, {"$set": update})
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated.")

    stamp = now()
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"failed_login_attempts": 0, "account_locked_until": None, "last_login": stamp}},
    )
    user["last_login"] = stamp
    return _session_response(user, "Login successful")


@router.get("/me")
def me(user=Depends(get_current_user)):
    return ok({"user": public_user(user)})


@router.post("/logout")
def logout(request: Request, user=Depends(get_current_user)):
    request.session.clear()
    return ok(message="Logged out successfully")


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user:
        raise HTTPException(status_code=404, detail="User not found with this email")

    token = secrets.token_hex(32)
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "password_reset_token": _hash_reset_token(token),
            "password_reset_expires": now() + timedelta(minutes=settings.RESET_TOKEN_MINUTES),
        }},
    )
    reset_url = f"{settings.FRONTEND_URL}/reset-password/{token}"
    subject, html_body, text = notifications.password_reset(user.get("name"), reset_url, settings.RESET_TOKEN_MINUTES)
    try:
        notifications.send_email_or_raise(user["email"], subject, html_body, text)
    except notifications.EmailError:
        db["user"].update_one(
            {"_id": user["_id"]},
            {"$set": {"password_reset_token": None, "password_reset_expires": None}},
        )
        raise HTTPException(status_code=500, detail="Email could not be sent")
    return ok(message="Password reset email sent")


@router.post("/reset-password/{token}")
def reset_password(token: str, body: ResetPasswordBody, db=Depends(get_db)):
    user = db["user"].find_one({"password_reset_token": _hash_reset_token(token)})
    expires = as_utc(user.get("password_reset_expires")) if user else None
    if not user or not expires or expires < now():
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "password_hash": hash_password(body.password),
            "password_reset_token": None,
            "password_reset_expires": None,
            "failed_login_attempts": 0,
            "account_locked_until": None,
            "updated_at": now(),
        }},
    )
    return _session_response(user, "Password reset successful")


@router.put("/change-password")
def change_password(body: ChangePasswordBody, user=Depends(get_current_user), db=Depends(get_db)):
    if not verify_password(body.current_password, user.get("password_hash")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": now()}},
    )
    return ok(message="Password changed successfully")
