# tests/test_registration.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update

from tenantgate.auth.context import AuthContext
from tenantgate.core import global_sessions, password_reset, registration
from tenantgate.core.clock import utcnow
from tenantgate.core.config import settings
from tenantgate.core.errors import AuthenticationFailure, InvalidToken, ResendThrottled
from tenantgate.core.registration import SignupStatus
from tenantgate.models.auth_token import AuthToken
from tenantgate.models.membership import Membership
from tenantgate.services.email import EmailKind

from tests.helpers import create_membership, create_tenant


async def _age_verification_send(db, membership_id) -> None:
    past = utcnow() - timedelta(seconds=settings.VERIFICATION_RESEND_COOLDOWN_SECONDS + 5)
    await db.execute(update(Membership).where(Membership.id == membership_id).values(verification_sent_at=past))
    await db.commit()


@pytest.mark.asyncio
async def test_signup_creates_pending_membership_and_sends_link(db, outbox):
    result = await registration.signup(
        db, outbox, name="  Jane   Doe ", email="Jane@Acme.io", password="s3cret-pass"
    )
    assert result.status == SignupStatus.VERIFICATION_SENT
    assert result.email == "jane@acme.io"

    membership = await db.get(Membership, result.membership_id)
    assert membership.tenant_id is None
    assert membership.is_email_verified is False
    assert membership.name == "Jane Doe"
    assert membership.password_hash and membership.password_hash != "s3cret-pass"

    sent = outbox.last(EmailKind.VERIFY_EMAIL)
    assert sent.to == "jane@acme.io"
    assert "/verify-email/" in sent.link


@pytest.mark.asyncio
async def test_repeat_signup_is_throttled_then_resent(db, outbox):
    first = await registration.signup(db, outbox, name="Jo", email="jo@acme.io", password="s3cret-pass")

    with pytest.raises(ResendThrottled) as exc:
        await registration.signup(db, outbox, name="Jo", email="jo@acme.io", password="s3cret-pass")
    assert exc.value.status_code == 429
    assert len(outbox.messages) == 1

    await _age_verification_send(db, first.membership_id)
    again = await registration.signup(db, outbox, name="Jo", email="jo@acme.io", password="s3cret-pass")
    assert again.status == SignupStatus.VERIFICATION_RESENT
    assert again.membership_id == first.membership_id
    assert len(outbox.messages) == 2


@pytest.mark.asyncio
async def test_verification_token_is_single_use(db, outbox):
    result = await registration.signup(db, outbox, name="Vi", email="vi@acme.io", password="s3cret-pass")
    token = outbox.token_of(EmailKind.VERIFY_EMAIL)

    membership = await registration.verify_email(db, token)
    assert membership.id == result.membership_id
    assert membership.is_email_verified is True

    with pytest.raises(InvalidToken):
        await registration.verify_email(db, token)
    with pytest.raises(InvalidToken):
        await registration.verify_email(db, "0" * 64)

    # verified but not onboarded yet
    after = await registration.signup(db, outbox, name="Vi", email="vi@acme.io", password="s3cret-pass")
    assert after.status == SignupStatus.TENANT_PENDING


@pytest.mark.asyncio
async def test_expired_verification_token_is_rejected(db, outbox):
    await registration.signup(db, outbox, name="Ex", email="ex@acme.io", password="s3cret-pass")
    await db.execute(update(AuthToken).values(expires_at=utcnow() - timedelta(minutes=1)))
    await db.commit()

    with pytest.raises(InvalidToken):
        await registration.verify_email(db, outbox.token_of(EmailKind.VERIFY_EMAIL))


@pytest.mark.asyncio
async def test_resend_does_not_reveal_unknown_emails(db, outbox):
    assert await registration.resend_verification(db, outbox, "ghost@acme.io") is None
    assert outbox.messages == []

    result = await registration.signup(db, outbox, name="Re", email="re@acme.io", password="s3cret-pass")
    await _age_verification_send(db, result.membership_id)
    assert await registration.resend_verification(db, outbox, "RE@acme.io") is None
    assert len(outbox.messages) == 2


@pytest.mark.asyncio
async def test_forgot_password_resets_one_membership_at_a_time(db, outbox):
    t1, _ = await create_tenant(db)
    t2, _ = await create_tenant(db)
    a = await create_membership(db, "reset@acme.io", "old-alpha-pass", tenant=t1)
    await create_membership(db, "reset@acme.io", "old-beta-pass", tenant=t2)
    await db.commit()

    await password_reset.forgot_password(db, outbox, "reset@acme.io")
    resets = [m for m in outbox.messages if m.kind == EmailKind.PASSWORD_RESET]
    assert len(resets) == 2

    link_for_a = [m for m in resets if m.context["membership_id"] == str(a.id)][0].link
    token = link_for_a.rsplit("/", 1)[-1]

    await password_reset.reset_password(db, token, "new-alpha-pass", sender=outbox)
    assert outbox.last().kind == EmailKind.PASSWORD_CHANGED

    result = await global_sessions.authenticate(db, "reset@acme.io", "new-alpha-pass")
    assert result.matched_ids == (str(a.id),)
    # the other membership keeps its own credential
    other = await global_sessions.authenticate(db, "reset@acme.io", "old-beta-pass")
    assert str(a.id) not in other.matched_ids

    with pytest.raises(InvalidToken):
        await password_reset.reset_password(db, token, "another-pass")


@pytest.mark.asyncio
async def test_forgot_password_for_unknown_email_is_silent(db, outbox):
    await password_reset.forgot_password(db, outbox, "nobody@acme.io")
    assert outbox.messages == []


@pytest.mark.asyncio
async def test_change_password_requires_current(db, outbox):
    tenant, _ = await create_tenant(db)
    m = await create_membership(db, "change@acme.io", "first-pass-1", tenant=tenant)
    await db.commit()
    ctx = AuthContext(session_id="s", membership_id=m.id, tenant_id=tenant.id, email=m.email)

    with pytest.raises(AuthenticationFailure):
        await password_reset.change_password(db, ctx, "wrong-pass-1", "second-pass-2")

    await password_reset.change_password(db, ctx, "first-pass-1", "second-pass-2", sender=outbox)
    assert outbox.last().kind == EmailKind.PASSWORD_CHANGED
    result = await global_sessions.authenticate(db, "change@acme.io", "second-pass-2")
    assert result.matched_ids == (str(m.id),)
