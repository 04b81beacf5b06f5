# tests/test_provisioning.py
from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from tenantgate.auth.permissions import FULL_ACCESS
from tenantgate.core import provisioning
from tenantgate.core.errors import AlreadyOnboarded, NotFound, ProvisioningFailure, VerificationRequired
from tenantgate.core.permission_resolver import resolve_navigation_for
from tenantgate.core.session_context import load_session_context
from tenantgate.core.security import TOKEN_TYPE_TENANT, decode_token
from tenantgate.core.tenant_sessions import authorize
from tenantgate.crud import rbac as rbac_crud
from tenantgate.models.branch import Branch
from tenantgate.models.membership import Membership
from tenantgate.models.role import Role
from tenantgate.models.tenant import Tenant
from tenantgate.services.email import EmailKind

from tests.helpers import create_membership, create_tenant


async def _count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_onboarding_builds_owned_tenant(db, outbox):
    pending = await create_membership(db, "owner@acme.io")
    await db.commit()

    result = await provisioning.provision_tenant(db, outbox, pending.id, tenant_name="  Acme Ltd ")

    assert result.tenant.name == "Acme Ltd"
    assert result.branch.is_hq is True
    assert result.branch.tenant_id == result.tenant.id
    assert result.membership.tenant_id == result.tenant.id
    assert result.membership.is_owner is True

    assert set(result.roles) == {"Super Admin", "Admin", "Manager"}
    assert result.roles["Super Admin"].role_type == "SYSTEM"
    assert result.roles["Manager"].role_type == "CUSTOM"

    rows = await rbac_crud.list_assignment_rows(db, pending.id)
    assert [(r.role_id, r.branch_id) for r in rows] == [(result.roles["Super Admin"].id, None)]

    assert result.subscription.is_active is True
    assert result.subscription.payment_status == "FREE"

    welcome = outbox.last(EmailKind.WELCOME)
    assert welcome.to == "owner@acme.io"
    assert welcome.context["tenant_name"] == "Acme Ltd"

    # the owner can work straight away
    ctx = await authorize(db, decode_token(result.opened.token, TOKEN_TYPE_TENANT))
    assert ctx.tenant_id == result.tenant.id and ctx.is_owner

    nav = await resolve_navigation_for(db, pending.id, result.branch.id)
    assert nav.permissions_for("roles") == FULL_ACCESS

    session = await load_session_context(db, ctx)
    assert session.tenant_wide
    assert [b.id for b in session.branches] == [result.branch.id]


@pytest.mark.asyncio
async def test_failure_mid_provisioning_leaves_nothing_behind(db, outbox, monkeypatch):
    pending = await create_membership(db, "broken@acme.io")
    await db.commit()
    pending_id = pending.id

    async def explode(*args, **kwargs):
        raise RuntimeError("grant table unavailable")

    monkeypatch.setattr(provisioning, "_create_default_roles", explode)

    with pytest.raises(ProvisioningFailure) as exc:
        await provisioning.provision_tenant(db, outbox, pending_id, tenant_name="Half Built")
    assert exc.value.status_code == 500

    assert await _count(db, Tenant) == 0
    assert await _count(db, Branch) == 0
    assert await _count(db, Role) == 0
    membership = await db.get(Membership, pending_id)
    assert membership.tenant_id is None
    assert membership.is_owner is False
    assert outbox.messages == []


@pytest.mark.asyncio
async def test_unverified_membership_cannot_onboard(db, outbox):
    pending = await create_membership(db, "early@acme.io", verified=False)
    await db.commit()

    with pytest.raises(VerificationRequired):
        await provisioning.provision_tenant(db, outbox, pending.id, tenant_name="Too Soon")


@pytest.mark.asyncio
async def test_onboarding_happens_once(db, outbox):
    tenant, _ = await create_tenant(db)
    member = await create_membership(db, "done@acme.io", tenant=tenant)
    await db.commit()

    with pytest.raises(AlreadyOnboarded):
        await provisioning.provision_tenant(db, outbox, member.id, tenant_name="Second")

    with pytest.raises(NotFound):
        await provisioning.provision_tenant(db, outbox, uuid.uuid4(), tenant_name="Nobody")


@pytest.mark.asyncio
async def test_unknown_plan_is_rejected_before_writing(db, outbox):
    pending = await create_membership(db, "plan@acme.io")
    await db.commit()

    with pytest.raises(NotFound):
        await provisioning.provision_tenant(db, outbox, pending.id, tenant_name="Planless", plan_id=uuid.uuid4())
    assert await _count(db, Tenant) == 0


@pytest.mark.asyncio
async def test_welcome_email_failure_does_not_undo_tenant(db):
    class BrokenSender:
        async def send(self, message):
            raise ConnectionError("smtp down")

    pending = await create_membership(db, "quiet@acme.io")
    await db.commit()

    result = await provisioning.provision_tenant(db, BrokenSender(), pending.id, tenant_name="Quiet Co")
    assert result.membership.tenant_id == result.tenant.id
    assert await _count(db, Tenant) == 1
