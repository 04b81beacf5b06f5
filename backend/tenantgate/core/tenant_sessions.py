# backend/tenantgate/core/tenant_sessions.py
"""
Phase 2 of login: a selected membership -> the operative tenant session.

ACTIVE -> INACTIVE is the only transition. Signed claims let a request be
routed without a lookup, but authorize() always re-reads the row so a logout
takes effect before the token expires.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.context import AuthContext
from tenantgate.core.clock import as_utc, utcnow
from tenantgate.core.config import settings
from tenantgate.core.errors import (
    OnboardingIncomplete,
    SessionExpired,
    SessionInactive,
    SessionInvalid,
    SessionNotFound,
    UnauthorizedSelection,
)
from tenantgate.core.global_sessions import validate_global_session
from tenantgate.core.observability import log_event
from tenantgate.core.security import create_tenant_token, new_session_id
from tenantgate.models.membership import Membership
from tenantgate.models.session import TenantSession


@dataclass(frozen=True)
class TenantClaims:
    tenant_session_id: str
    membership_id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    expires_at: datetime


@dataclass(frozen=True)
class OpenedSession:
    session: TenantSession
    claims: TenantClaims
    token: str


async def open_tenant_session(
    db: AsyncSession,
    membership: Membership,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    commit: bool = True,
) -> OpenedSession:
    """Create the session row and its signed claims. Membership must be linked to a tenant."""
    if membership.tenant_id is None:
        raise OnboardingIncomplete()

    expires_at = utcnow() + timedelta(minutes=settings.TENANT_SESSION_TTL_MINUTES)
    session = TenantSession(
        id=new_session_id(),
        membership_id=membership.id,
        tenant_id=membership.tenant_id,
        expires_at=expires_at,
        is_active=True,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        last_seen_at=utcnow(),
    )
    db.add(session)
    if commit:
        await db.commit()
    else:
        await db.flush()

    claims = TenantClaims(
        tenant_session_id=session.id,
        membership_id=membership.id,
        tenant_id=membership.tenant_id,
        email=membership.email,
        expires_at=expires_at,
    )
    token = create_tenant_token(
        tenant_session_id=claims.tenant_session_id,
        membership_id=str(claims.membership_id),
        tenant_id=str(claims.tenant_id),
        email=claims.email,
        expires_at=expires_at,
    )
    log_event("tenant_session_opened", membership_id=membership.id, tenant_id=membership.tenant_id)
    return OpenedSession(session=session, claims=claims, token=token)


async def finalize(
    db: AsyncSession,
    global_session_id: Optional[str],
    membership_id: uuid.UUID,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> OpenedSession:
    view = await validate_global_session(db, global_session_id)

    # Only a membership whose password matched at login may be promoted.
    if str(membership_id) not in view.matched_ids:
        log_event("tenant_selection_refused", level=logging.WARNING, membership_id=membership_id)
        raise UnauthorizedSelection()

    membership = await db.get(Membership, membership_id)
    if membership is None or membership.email != view.email:
        log_event("tenant_selection_refused", level=logging.WARNING, membership_id=membership_id, reason="gone")
        raise UnauthorizedSelection()

    return await open_tenant_session(db, membership, ip_address=ip_address, user_agent=user_agent)


async def validate(db: AsyncSession, session_id: Optional[str]) -> TenantSession:
    if not session_id:
        raise SessionNotFound()

    session = await db.get(TenantSession, session_id)
    if session is None:
        log_event("tenant_session_rejected", reason="not_found")
        raise SessionNotFound()
    if not session.is_active:
        log_event("tenant_session_rejected", reason="inactive", membership_id=session.membership_id)
        raise SessionInactive()
    if utcnow() >= as_utc(session.expires_at):
        log_event("tenant_session_rejected", reason="expired", membership_id=session.membership_id)
        raise SessionExpired()
    return session


async def invalidate(db: AsyncSession, session_id: Optional[str]) -> None:
    """Deactivate the session. Unknown or already inactive sessions are not an error."""
    if not session_id:
        return
    session = await db.get(TenantSession, session_id)
    if session is None or not session.is_active:
        return
    session.is_active = False
    await db.commit()
    log_event("tenant_session_closed", membership_id=session.membership_id)


def _claim_uuid(payload: Mapping[str, Any], key: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(payload.get(key)))
    except ValueError:
        raise SessionInvalid()


async def authorize(db: AsyncSession, payload: Mapping[str, Any]) -> AuthContext:
    """
    Turn decoded tenant claims into an AuthContext after re-validating the
    session row. Claims that disagree with the stored row are rejected.
    """
    session = await validate(db, payload.get("tenant_session_id"))

    if session.membership_id != _claim_uuid(payload, "membership_id"):
        raise SessionInvalid()
    if session.tenant_id != _claim_uuid(payload, "tenant_id"):
        raise SessionInvalid()

    membership = await db.get(Membership, session.membership_id)
    if membership is None or membership.tenant_id != session.tenant_id:
        raise SessionNotFound()

    return AuthContext(
        session_id=session.id,
        membership_id=membership.id,
        tenant_id=session.tenant_id,
        email=membership.email,
        is_owner=membership.is_owner,
    )
