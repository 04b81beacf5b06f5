# backend/tenantgate/core/global_sessions.py
"""
Phase 1 of login: email + password -> a bridging session that only allows
choosing one of the memberships whose credential matched.

The same email may hold a different credential in every membership, so the
password is checked against each of them and only the matching subset is
carried forward. Federated sign-in skips the password: the provider has
already verified the email.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.clock import as_utc, utcnow
from tenantgate.core.config import settings
from tenantgate.core.errors import AuthenticationFailure, SessionExpired, SessionNotFound
from tenantgate.core.observability import log_event
from tenantgate.core.registration import get_or_create_identity
from tenantgate.core.security import burn_password_check, new_session_id, verify_password
from tenantgate.crud import rbac as rbac_crud
from tenantgate.crud.membership import list_memberships_by_email, normalize_email
from tenantgate.models.membership import Membership
from tenantgate.models.session import GlobalSession
from tenantgate.models.tenant import Tenant
from tenantgate.services.email import EmailKind, EmailMessage, EmailSender
from tenantgate.services.identity_provider import FederatedProfile


@dataclass(frozen=True)
class MembershipCandidate:
    membership_id: uuid.UUID
    tenant_id: Optional[uuid.UUID]
    tenant_name: Optional[str]
    is_owner: bool
    is_email_verified: bool
    has_password: bool
    password_matched: bool
    roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class AuthResult:
    email: str
    candidates: tuple[MembershipCandidate, ...]
    matched_ids: tuple[str, ...]


@dataclass(frozen=True)
class GlobalSessionView:
    session_id: str
    email: str
    matched_ids: tuple[str, ...]
    expires_at: datetime


async def _describe_memberships(
    db: AsyncSession,
    memberships: Sequence[Membership],
    matched: set[uuid.UUID],
) -> tuple[MembershipCandidate, ...]:
    tenant_ids = {m.tenant_id for m in memberships if m.tenant_id is not None}
    tenant_names: dict[uuid.UUID, str] = {}
    if tenant_ids:
        rows = (await db.execute(select(Tenant.id, Tenant.name).where(Tenant.id.in_(tenant_ids)))).all()
        tenant_names = {tid: name for tid, name in rows}

    role_names: dict[uuid.UUID, list[str]] = {}
    for assignment, role, _branch in await rbac_crud.list_assignments_detailed(db, [m.id for m in memberships]):
        role_names.setdefault(assignment.membership_id, []).append(role.name)

    return tuple(
        MembershipCandidate(
            membership_id=m.id,
            tenant_id=m.tenant_id,
            tenant_name=tenant_names.get(m.tenant_id) if m.tenant_id else None,
            is_owner=m.is_owner,
            is_email_verified=m.is_email_verified,
            has_password=m.has_credential,
            password_matched=m.id in matched,
            roles=tuple(role_names.get(m.id, ())),
        )
        for m in memberships
    )


async def authenticate(db: AsyncSession, email: str, password: str) -> AuthResult:
    """
    Check the password against every membership sharing the email.

    Returns all memberships for display with a password_matched flag; only
    matched_ids may proceed to tenant selection. Unknown email and wrong
    password raise the same AuthenticationFailure after the same hashing work.
    """
    email = normalize_email(email)
    memberships = await list_memberships_by_email(db, email)
    with_credential = [m for m in memberships if m.has_credential]

    if not with_credential:
        await asyncio.to_thread(burn_password_check, password)
        log_event("login_failed", level=logging.WARNING, reason="no_credential" if memberships else "unknown_email")
        raise AuthenticationFailure(reason="no_match")

    # Independent checks, no shared state.
    results = await asyncio.gather(
        *(asyncio.to_thread(verify_password, password, m.password_hash) for m in with_credential)
    )
    matched = {m.id for m, ok in zip(with_credential, results) if ok}

    if not matched:
        log_event("login_failed", level=logging.WARNING, reason="password_mismatch", candidates=len(memberships))
        raise AuthenticationFailure(reason="no_match")

    candidates = await _describe_memberships(db, memberships, matched)
    return AuthResult(
        email=email,
        candidates=candidates,
        matched_ids=tuple(str(c.membership_id) for c in candidates if c.password_matched),
    )


async def create_global_session(
    db: AsyncSession,
    email: str,
    matched_ids: Sequence[str],
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> GlobalSession:
    session = GlobalSession(
        id=new_session_id(),
        email=normalize_email(email),
        membership_ids=list(matched_ids),
        expires_at=utcnow() + timedelta(minutes=settings.GLOBAL_SESSION_TTL_MINUTES),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    db.add(session)
    await db.commit()
    log_event("global_session_created", candidates=len(matched_ids))
    return session


async def validate_global_session(db: AsyncSession, session_id: Optional[str]) -> GlobalSessionView:
    if not session_id:
        raise SessionNotFound()

    session = await db.get(GlobalSession, session_id)
    if session is None:
        log_event("global_session_rejected", level=logging.INFO, reason="not_found")
        raise SessionNotFound()

    expires_at = as_utc(session.expires_at)
    if utcnow() >= expires_at:
        # Discard on the read that finds it expired.
        await db.delete(session)
        await db.commit()
        log_event("global_session_rejected", level=logging.INFO, reason="expired")
        raise SessionExpired()

    return GlobalSessionView(
        session_id=session.id,
        email=session.email,
        matched_ids=tuple(session.membership_ids or ()),
        expires_at=expires_at,
    )


async def list_selectable_memberships(
    db: AsyncSession,
    email: str,
    matched_ids: Sequence[str],
) -> tuple[MembershipCandidate, ...]:
    """All memberships for the session's email, flagged by whether they may be selected."""
    memberships = await list_memberships_by_email(db, email)
    allowed = {uuid.UUID(mid) for mid in matched_ids}
    candidates = await _describe_memberships(db, memberships, allowed)
    return tuple(replace(c, password_matched=c.membership_id in allowed) for c in candidates)


async def invalidate_global_session(db: AsyncSession, session_id: Optional[str]) -> None:
    """Explicit global logout. Unknown ids are ignored."""
    if not session_id:
        return
    session = await db.get(GlobalSession, session_id)
    if session is None:
        return
    await db.delete(session)
    await db.commit()
    log_event("global_session_closed")


# ---------------------------------------------------------
# Federated sign-in
# ---------------------------------------------------------
@dataclass(frozen=True)
class FederatedSignup:
    auth: AuthResult
    membership_id: uuid.UUID
    is_new: bool


async def federated_login(db: AsyncSession, profile: FederatedProfile) -> AuthResult:
    """
    The provider has verified the email, so every membership it holds is
    selectable whether or not it has a password. No membership at all is the
    same AuthenticationFailure as a bad password.
    """
    email = normalize_email(profile.email)
    memberships = await list_memberships_by_email(db, email)
    if not memberships:
        log_event("login_failed", level=logging.WARNING, reason="unknown_email", provider=profile.provider)
        raise AuthenticationFailure(reason="no_membership")

    candidates = await _describe_memberships(db, memberships, {m.id for m in memberships})
    log_event("federated_login", provider=profile.provider, candidates=len(candidates))
    return AuthResult(
        email=email,
        candidates=candidates,
        matched_ids=tuple(str(c.membership_id) for c in candidates),
    )


async def federated_signup(db: AsyncSession, sender: EmailSender, profile: FederatedProfile) -> FederatedSignup:
    """
    Reuse the email's pending membership (or its oldest one), otherwise create
    the Identity and a verified, credential-less pending membership. Only that
    membership is matched for the following tenant selection.
    """
    email = normalize_email(profile.email)
    memberships = list(await list_memberships_by_email(db, email))
    membership = next((m for m in memberships if m.tenant_id is None), None)
    if membership is None and memberships:
        membership = memberships[0]

    is_new = membership is None
    if membership is None:
        identity = await get_or_create_identity(db, email, profile.name)
        membership = Membership(
            identity_id=identity.id,
            tenant_id=None,
            email=email,
            name=profile.name,
            password_hash=None,
            is_owner=False,
            is_email_verified=True,
        )
        db.add(membership)
        await db.flush()
        memberships.append(membership)
    elif not membership.is_email_verified:
        # the provider vouched for the address
        membership.is_email_verified = True
    await db.commit()

    if is_new:
        log_event("federated_signup_created", provider=profile.provider, membership_id=membership.id)
        try:
            await sender.send(EmailMessage(kind=EmailKind.FEDERATED_SIGNUP, to=email, name=membership.name))
        except Exception as exc:
            log_event(
                "federated_signup_email_failed",
                level=logging.WARNING,
                membership_id=membership.id,
                error=type(exc).__name__,
            )

    candidates = await _describe_memberships(db, memberships, {membership.id})
    return FederatedSignup(
        auth=AuthResult(email=email, candidates=candidates, matched_ids=(str(membership.id),)),
        membership_id=membership.id,
        is_new=is_new,
    )
