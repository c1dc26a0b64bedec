from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from milguard.core.deps import get_current_user, get_storage
from milguard.core.errors import AuthRequiredError, ValidationError
from milguard.core.security import hash_password, issue_token, verify_password
from milguard.schemas import User
from milguard.storage.base import Storage

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordChangeRequest(BaseModel):
    currentPassword: str
    newPassword: str


def _auth_response(user: User) -> dict:
    return {"token": issue_token(user.id), "user": user.to_json()}


def _check_password(password: str):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


# =========================
# REGISTER
# =========================
@router.post("/register")
def register(body: RegisterRequest, storage: Storage = Depends(get_storage)):
    email = body.email.strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("Please enter a valid email address")
    _check_password(body.password)

    user = storage.create_user(
        email=email,
        password_hash=hash_password(body.password),
        name=(body.name or "").strip() or None,
    )
    print(f"[AUTH] registered user={user.id}", flush=True)
    return _auth_response(user)


# =========================
# LOGIN
# =========================
@router.post("/login")
def login(body: LoginRequest, storage: Storage = Depends(get_storage)):
    user = storage.get_user_by_email(body.email)
    if not user or not verify_password(body.password, user.password_hash):
        print("[AUTH] Invalid credentials", flush=True)
        raise AuthRequiredError("Invalid credentials")

    print(f"[AUTH] Login successful for user={user.id}", flush=True)
    return _auth_response(user)


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": user.to_json()}


@router.post("/password")
def change_password(
    body: PasswordChangeRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    if not verify_password(body.currentPassword, user.password_hash):
        raise AuthRequiredError("Current password is incorrect")
    _check_password(body.newPassword)
    storage.update_user(user.id, password_hash=hash_password(body.newPassword))
    print(f"[AUTH] password changed user={user.id}", flush=True)
    return {"message": "Password updated"}
