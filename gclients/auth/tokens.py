# gclients/auth/tokens.py
"""
Credential primitives

- Bearer tokens: HS256 JWT with sub / iat / exp (24h)
- Verification OTP: 6 digits (15 min), stored on the user record
- Reset token: opaque url-safe string (1h), stored on the user record
- Password hashing: bcrypt
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

import bcrypt
from jose import JWTError, jwt

from gclients import config

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72


# ==================== PASSWORDS ====================

def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ==================== BEARER TOKENS ====================

def issue_token(user_id: str, now: Optional[datetime] = None) -> str:
    """Issue a bearer token for user_id, valid for TOKEN_EXPIRE_HOURS"""
    issued_at = now or datetime.utcnow()
    payload = {
        "sub": user_id,
        "iat": int(_epoch(issued_at)),
        "exp": int(_epoch(issued_at + timedelta(hours=config.TOKEN_EXPIRE_HOURS))),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def validate_token(token: Optional[str]) -> Optional[str]:
    """
    Returns the user id carried by token,
    or None when the token is malformed, tampered with or expired
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    return user_id if isinstance(user_id, str) and user_id else None


def _epoch(moment: datetime) -> float:
    return (moment - datetime(1970, 1, 1)).total_seconds()


# ==================== ONE-TIME CREDENTIALS ====================

def issue_one_time_code(now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """6-digit numeric OTP and its expiry"""
    code = str(100000 + secrets.randbelow(900000))
    expires_at = (now or datetime.utcnow()) + timedelta(minutes=config.OTP_EXPIRE_MINUTES)
    return code, expires_at


def issue_reset_token(now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Opaque password-reset token and its expiry"""
    token = secrets.token_urlsafe(32)
    expires_at = (now or datetime.utcnow()) + timedelta(minutes=config.RESET_TOKEN_EXPIRE_MINUTES)
    return token, expires_at


def is_one_time_code_valid(user: dict, code: str, now: Optional[datetime] = None) -> bool:
    """Check code against the OTP stored on a user document"""
    stored = user.get("verification_otp")
    expiry = user.get("verification_otp_expiry")
    if not stored or not expiry or not code:
        return False
    if (now or datetime.utcnow()) > expiry:
        return False
    return secrets.compare_digest(stored, code.strip())
