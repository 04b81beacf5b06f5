# backend/tenantgate/core/registration.py
"""
Signup and email verification.

Signup creates a pending membership (no tenant yet). The verification email
cooldown is claimed with a conditional UPDATE on verification_sent_at, so two
concurrent resends cannot both pass the check.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.clock import utcnow
from tenantgate.core.config import settings
from tenantgate.core.errors import InvalidToken, ResendThrottled
from tenantgate.core.observability import log_event
from tenantgate.core.one_time_tokens import consume_token, issue_token
from tenantgate.core.security import hash_password
from tenantgate.crud.membership import find_pending_membership, normalize_email
from tenantgate.models.auth_token import TOKEN_EMAIL_VERIFICATION
from tenantgate.models.identity import Identity
from tenantgate.models.membership import Membership
from tenantgate.services.email import EmailKind, EmailMessage, EmailSender, verification_link


class SignupStatus(str, enum.Enum):
    VERIFICATION_SENT = "verification_sent"
    VERIFICATION_RESENT = "verification_resent"
    TENANT_PENDING = "tenant_pending"


@dataclass(frozen=True)
class SignupResult:
    status: SignupStatus
    email: str
    membership_id: Optional[uuid.UUID] = None


async def get_or_create_identity(db: AsyncSession, email: str, name: Optional[str]) -> Identity:
    email = normalize_email(email)
    existing = (await db.execute(select(Identity).where(Identity.email == email))).scalar_one_or_none()
    if existing is not None:
        return existing

    identity = Identity(email=email, name=name)
    db.add(identity)
    try:
        await db.flush()
    except IntegrityError:
        # Another request created it first. Nothing else is pending at this point.
        await db.rollback()
        identity = (await db.execute(select(Identity).where(Identity.email == email))).scalar_one()
    return identity


async def claim_verification_slot(db: AsyncSession, membership_id: uuid.UUID) -> bool:
    """
    Stamp verification_sent_at if the cooldown has elapsed. Returns False when
    another send happened inside the window. Caller commits.
    """
    now = utcnow()
    cutoff = now - timedelta(seconds=settings.VERIFICATION_RESEND_COOLDOWN_SECONDS)
    res = await db.execute(
        update(Membership)
        .where(Membership.id == membership_id)
        .where(
            or_(
                Membership.verification_sent_at.is_(None),
                Membership.verification_sent_at <= cutoff,
            )
        )
        .values(verification_sent_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def _send_verification(
    db: AsyncSession,
    sender: EmailSender,
    membership: Membership,
) -> None:
    token = await issue_token(
        db,
        membership.id,
        TOKEN_EMAIL_VERIFICATION,
        settings.EMAIL_VERIFICATION_TTL_MINUTES,
    )
    await db.commit()
    await sender.send(
        EmailMessage(
            kind=EmailKind.VERIFY_EMAIL,
            to=membership.email,
            name=membership.name,
            link=verification_link(token),
        )
    )


async def _resend_for(db: AsyncSession, sender: EmailSender, membership: Membership) -> None:
    membership_id = membership.id
    if not await claim_verification_slot(db, membership_id):
        await db.rollback()
        log_event("verification_resend_throttled", level=logging.WARNING, membership_id=membership_id)
        raise ResendThrottled()
    await _send_verification(db, sender, membership)


async def signup(
    db: AsyncSession,
    sender: EmailSender,
    *,
    name: str,
    email: str,
    password: str,
) -> SignupResult:
    email = normalize_email(email)
    name = " ".join(name.split())

    pending = await find_pending_membership(db, email)
    if pending is not None and not pending.is_email_verified:
        await _resend_for(db, sender, pending)
        log_event("signup_verification_resent", membership_id=pending.id)
        return SignupResult(SignupStatus.VERIFICATION_RESENT, email, pending.id)

    if pending is not None:
        return SignupResult(SignupStatus.TENANT_PENDING, email, pending.id)

    password_hash = await asyncio.to_thread(hash_password, password)
    identity = await get_or_create_identity(db, email, name)
    membership = Membership(
        identity_id=identity.id,
        tenant_id=None,
        email=email,
        name=name,
        password_hash=password_hash,
        is_owner=False,
        is_email_verified=False,
        verification_sent_at=utcnow(),
    )
    db.add(membership)
    await db.flush()

    await _send_verification(db, sender, membership)
    log_event("signup_created", membership_id=membership.id)
    return SignupResult(SignupStatus.VERIFICATION_SENT, email, membership.id)


async def verify_email(db: AsyncSession, token: str) -> Membership:
    record = await consume_token(db, token, TOKEN_EMAIL_VERIFICATION)
    membership = await db.get(Membership, record.membership_id)
    if membership is None:
        await db.rollback()
        raise InvalidToken()

    membership.is_email_verified = True
    await db.commit()
    log_event("email_verified", membership_id=membership.id)
    return membership


async def resend_verification(db: AsyncSession, sender: EmailSender, email: str) -> Optional[SignupStatus]:
    """
    Resend the link for the pending membership of this email.

    Unknown emails get None, the same answer as a successful send, so the
    endpoint does not reveal which addresses exist.
    """
    pending = await find_pending_membership(db, email)
    if pending is None:
        log_event("verification_resend_ignored", reason="no_pending_membership")
        return None
    if pending.is_email_verified:
        return SignupStatus.TENANT_PENDING

    await _resend_for(db, sender, pending)
    return None
