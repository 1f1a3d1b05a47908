# cashback/auth.py
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

import bcrypt
from jose import jwt, JWTError
from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .db import get_db
from .models import Profile

log = logging.getLogger("cashback.auth")

# ─────────────────────────────────────────────────────────────────────────────
# Env config
# ─────────────────────────────────────────────────────────────────────────────

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALG = "HS256"
# default ~30 days (in minutes)
JWT_EXPIRE_MIN = int(os.getenv("JWT_EXPIRE_MIN", "43200"))

# Comma-separated emails that are granted admin when they sign up.
ADMIN_EMAILS: Set[str] = {
    e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()
}

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Passwords
# ─────────────────────────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Check 'plain' against a stored bcrypt hash; malformed hashes fail closed."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


def is_admin_email(email: str) -> bool:
    return email.strip().lower() in ADMIN_EMAILS


# ─────────────────────────────────────────────────────────────────────────────
# JWT helpers
# ─────────────────────────────────────────────────────────────────────────────

def create_token(profile_id: str) -> str:
    """Create a signed JWT for a user session. Carries identity only, no roles."""
    iat = _now_utc()
    exp = iat + timedelta(minutes=JWT_EXPIRE_MIN)
    payload = {
        "sub": profile_id,
        "iat": int(iat.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired session: {str(e)}",
        )


# ─────────────────────────────────────────────────────────────────────────────
# Auth dependencies
# ─────────────────────────────────────────────────────────────────────────────

def require_user(
    session: Optional[str] = Cookie(default=None),           # cookie "session"
    authorization: Optional[str] = Header(default=None),     # optional "Bearer <jwt>" fallback
    db: Session = Depends(get_db),
) -> Profile:
    """
    Validate the session and load the caller's profile. Accepts either:
      - Cookie: session=<jwt>
      - Header: Authorization: Bearer <jwt>
    Raises 401 when missing, invalid, or the profile no longer exists.
    """
    token = session

    if not token and authorization:
        parts = authorization.strip().split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            token = parts[1]

    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated")

    claims = _decode_token(token)
    profile = db.get(Profile, claims.get("sub") or "")
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return profile


def require_admin(profile: Profile = Depends(require_user)) -> Profile:
    """Admin gate, evaluated from the stored profile on every request."""
    if not profile.is_admin:
        log.warning("Non-admin %s tried an admin route", profile.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return profile
