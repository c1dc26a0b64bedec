"""
Password hashing and bearer tokens.

Stored hashes look like ``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``
so the iteration count can be raised without invalidating old accounts.
Tokens are HS256 JWTs whose ``sub`` claim is the user id.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import hashlib
import hmac
import os

from jose import jwt, JWTError

from milguard.core.config import PASSWORD_HASH_ITERATIONS, TOKEN_TTL_MINUTES

HASH_SCHEME = "pbkdf2_sha256"


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def hash_password(password: str, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    salt = os.urandom(16)
    digest = _derive(password, salt, iterations)
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """False for a wrong password and for any stored value we cannot parse."""
    try:
        scheme, iterations, salt_hex, digest_hex = stored.split("$")
        if scheme != HASH_SCHEME:
            return False
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    return hmac.compare_digest(_derive(password, salt, rounds), expected)


SECRET_KEY = os.getenv("SECRET_KEY", "")
if not SECRET_KEY:
    if os.getenv("ENVIRONMENT", "").lower() == "production":
        raise RuntimeError("SECRET_KEY env var is required in production")
    SECRET_KEY = "milguard-dev-secret-CHANGE-ME"
    print("[AUTH] WARNING: SECRET_KEY not set, using an insecure development key", flush=True)

ALGORITHM = "HS256"


def issue_token(user_id: str, ttl: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "iat": now,
        "exp": now + (ttl or timedelta(minutes=TOKEN_TTL_MINUTES)),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def token_subject(token: str) -> Optional[str]:
    """User id carried by *token*, or None when it is expired, forged or malformed."""
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        print("[AUTH] token expired", flush=True)
        return None
    except JWTError as e:
        print(f"[AUTH] token rejected: {type(e).__name__}", flush=True)
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None
