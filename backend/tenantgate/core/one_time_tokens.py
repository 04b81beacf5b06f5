# backend/tenantgate/core/one_time_tokens.py

from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.clock import as_utc, utcnow
from tenantgate.core.errors import InvalidToken
from tenantgate.core.security import hash_one_time_token, new_one_time_token
from tenantgate.models.auth_token import AuthToken


async def issue_token(
    db: AsyncSession,
    membership_id: uuid.UUID,
    token_type: str,
    ttl_minutes: int,
) -> str:
    """Store the hash and return the raw token for the emailed link. Caller commits."""
    raw = new_one_time_token()
    db.add(
        AuthToken(
            token_hash=hash_one_time_token(raw),
            token_type=token_type,
            membership_id=membership_id,
            expires_at=utcnow() + timedelta(minutes=ttl_minutes),
        )
    )
    await db.flush()
    return raw


async def consume_token(db: AsyncSession, raw: str, token_type: str) -> AuthToken:
    """
    Mark a token used and return it. Unknown, expired, already used and
    wrong-type tokens all fail the same way. Caller commits.
    """
    if not raw:
        raise InvalidToken()

    stmt = (
        select(AuthToken)
        .where(AuthToken.token_hash == hash_one_time_token(raw.strip()))
        .where(AuthToken.token_type == token_type)
    )
    token = (await db.execute(stmt)).scalar_one_or_none()
    if token is None or token.used_at is not None:
        raise InvalidToken()
    if utcnow() >= as_utc(token.expires_at):
        raise InvalidToken()

    # Conditional update so two concurrent consumers cannot both succeed.
    res = await db.execute(
        update(AuthToken)
        .where(AuthToken.id == token.id)
        .where(AuthToken.used_at.is_(None))
        .values(used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise InvalidToken()
    return token


async def revoke_open_tokens(db: AsyncSession, membership_id: uuid.UUID, token_type: str) -> None:
    await db.execute(
        update(AuthToken)
        .where(AuthToken.membership_id == membership_id)
        .where(AuthToken.token_type == token_type)
        .where(AuthToken.used_at.is_(None))
        .values(used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
