from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from tenantgate.core.config import settings
from tenantgate.core.errors import PasswordTooLong, SessionInvalid

TOKEN_TYPE_GLOBAL = "global"
TOKEN_TYPE_TENANT = "tenant"

# Verified against when an email has no usable credential so that unknown and
# mismatched emails cost the same bcrypt round.
_DUMMY_HASH = bcrypt.hashpw(b"tenantgate-dummy-password", bcrypt.gensalt()).decode()


def _normalize_token(token: Optional[str]) -> str:
    """
    Make token decoding resilient to common Swagger / copy-paste issues:
    - Leading/trailing whitespace/newlines
    - Surrounding quotes
    - Accidentally including the 'Bearer ' prefix in the token field
    """
    if token is None:
        return ""

    t = token.strip()

    if (t.startswith('"') and t.endswith('"')) or (t.startswith("'") and t.endswith("'")):
        t = t[1:-1].strip()

    if t.lower().startswith("bearer "):
        t = t[7:].strip()

    return t


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
# bcrypt only reads the first 72 bytes; current releases refuse longer input.
PASSWORD_MAX_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > PASSWORD_MAX_BYTES


def hash_password(password: str) -> str:
    if password_too_long(password):
        raise PasswordTooLong()
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def burn_password_check(password: str) -> None:
    candidate = password.encode("utf-8")[:PASSWORD_MAX_BYTES]
    bcrypt.checkpw(candidate, _DUMMY_HASH.encode("utf-8"))


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    if password_too_long(password):
        # No stored hash can match; spend the same work as a real check.
        burn_password_check(password)
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash counts as a mismatch.
        return False


# ---------------------------------------------------------
# Opaque identifiers and one-time tokens
# ---------------------------------------------------------
def new_session_id() -> str:
    return secrets.token_urlsafe(24)


def new_one_time_token() -> str:
    return secrets.token_hex(32)


def hash_one_time_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------
# Signed claims
# ---------------------------------------------------------
def _encode(claims: dict[str, Any], token_type: str, expires_at: datetime) -> str:
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = dict(claims)
    to_encode.update(
        {
            "typ": token_type,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
    )
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_global_token(*, email: str, global_session_id: str, expires_at: datetime) -> str:
    return _encode(
        {"email": email, "global_session_id": global_session_id},
        TOKEN_TYPE_GLOBAL,
        expires_at,
    )


def create_tenant_token(
    *,
    tenant_session_id: str,
    membership_id: str,
    tenant_id: str,
    email: str,
    expires_at: datetime,
) -> str:
    return _encode(
        {
            "tenant_session_id": tenant_session_id,
            "membership_id": membership_id,
            "tenant_id": tenant_id,
            "email": email,
        },
        TOKEN_TYPE_TENANT,
        expires_at,
    )


def decode_token(token: Optional[str], expected_type: str) -> dict[str, Any]:
    token = _normalize_token(token)
    if not token:
        raise SessionInvalid()

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_exp": True},
        )
    except JWTError:
        # Includes expired signature, bad format, bad signature, wrong algorithm, etc.
        raise SessionInvalid()

    if payload.get("typ") != expected_type:
        raise SessionInvalid()
    return payload
