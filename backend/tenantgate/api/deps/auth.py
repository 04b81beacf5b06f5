# backend/tenantgate/api/deps/auth.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.context import AuthContext, GlobalContext
from tenantgate.core import tenant_sessions
from tenantgate.core.config import settings
from tenantgate.core.errors import SessionInvalid
from tenantgate.core.global_sessions import validate_global_session
from tenantgate.core.security import TOKEN_TYPE_GLOBAL, TOKEN_TYPE_TENANT, decode_token
from tenantgate.db.session import get_db

bearer_scheme = HTTPBearer(auto_error=False)


def client_meta(request: Request) -> tuple[Optional[str], Optional[str]]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


def read_global_token(
    request: Request,
    x_global_token: Optional[str] = Header(default=None, alias="X-Global-Token"),
) -> Optional[str]:
    return x_global_token or request.cookies.get(settings.GLOBAL_COOKIE_NAME)


def read_tenant_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    # explicit header first; browsers rely on the cookie
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(settings.TENANT_COOKIE_NAME)


async def get_global_context(
    token: Optional[str] = Depends(read_global_token),
    db: AsyncSession = Depends(get_db),
) -> GlobalContext:
    """Phase-1 caller. Claims are only a pointer; the stored session is authoritative."""
    payload = decode_token(token, TOKEN_TYPE_GLOBAL)
    view = await validate_global_session(db, payload.get("global_session_id"))
    if view.email != payload.get("email"):
        raise SessionInvalid()
    return GlobalContext(
        global_session_id=view.session_id,
        email=view.email,
        membership_ids=view.matched_ids,
    )


async def get_auth_context(
    token: Optional[str] = Depends(read_tenant_token),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """
    Dependency for every tenant-scoped endpoint. Re-reads the session row so a
    logout or expiry is honored even while the signed token is still valid.
    """
    payload = decode_token(token, TOKEN_TYPE_TENANT)
    return await tenant_sessions.authorize(db, payload)
