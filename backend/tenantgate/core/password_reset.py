# backend/tenantgate/core/password_reset.py

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.context import AuthContext
from tenantgate.core.config import settings
from tenantgate.core.errors import AuthenticationFailure, InvalidToken, SessionNotFound
from tenantgate.core.observability import log_event
from tenantgate.core.one_time_tokens import consume_token, issue_token, revoke_open_tokens
from tenantgate.core.security import hash_password, verify_password
from tenantgate.crud.membership import list_memberships_by_email
from tenantgate.models.auth_token import TOKEN_PASSWORD_RESET
from tenantgate.models.membership import Membership
from tenantgate.services.email import EmailKind, EmailMessage, EmailSender, password_reset_link


async def forgot_password(db: AsyncSession, sender: EmailSender, email: str) -> None:
    """
    One reset link per credential-holding membership of the email, since each
    membership owns its own password. Returns nothing either way.
    """
    memberships = [m for m in await list_memberships_by_email(db, email) if m.has_credential]
    if not memberships:
        log_event("password_reset_ignored", reason="no_credential")
        return

    links: list[tuple[Membership, str]] = []
    for membership in memberships:
        token = await issue_token(db, membership.id, TOKEN_PASSWORD_RESET, settings.PASSWORD_RESET_TTL_MINUTES)
        links.append((membership, token))
    await db.commit()

    for membership, token in links:
        await sender.send(
            EmailMessage(
                kind=EmailKind.PASSWORD_RESET,
                to=membership.email,
                name=membership.name,
                link=password_reset_link(token),
                context={"membership_id": str(membership.id)},
            )
        )
    log_event("password_reset_requested", memberships=len(links))


async def reset_password(
    db: AsyncSession,
    token: str,
    new_password: str,
    sender: EmailSender | None = None,
) -> Membership:
    record = await consume_token(db, token, TOKEN_PASSWORD_RESET)
    membership = await db.get(Membership, record.membership_id)
    if membership is None:
        await db.rollback()
        raise InvalidToken()

    membership.password_hash = await asyncio.to_thread(hash_password, new_password)
    await revoke_open_tokens(db, membership.id, TOKEN_PASSWORD_RESET)
    await db.commit()
    log_event("password_reset_completed", membership_id=membership.id)

    if sender is not None:
        await sender.send(EmailMessage(kind=EmailKind.PASSWORD_CHANGED, to=membership.email, name=membership.name))
    return membership


async def change_password(
    db: AsyncSession,
    ctx: AuthContext,
    current_password: str,
    new_password: str,
    sender: EmailSender | None = None,
) -> None:
    membership = await db.get(Membership, ctx.membership_id)
    if membership is None:
        raise SessionNotFound()

    ok = await asyncio.to_thread(verify_password, current_password, membership.password_hash)
    if not ok:
        log_event("password_change_refused", level=logging.WARNING, membership_id=membership.id)
        raise AuthenticationFailure(reason="current_password_mismatch")

    membership.password_hash = await asyncio.to_thread(hash_password, new_password)
    await db.commit()
    log_event("password_changed", membership_id=membership.id)

    if sender is not None:
        await sender.send(EmailMessage(kind=EmailKind.PASSWORD_CHANGED, to=membership.email, name=membership.name))
