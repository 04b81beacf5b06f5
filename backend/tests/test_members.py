# tests/test_members.py
from __future__ import annotations

import pytest

from tenantgate.auth.context import AuthContext
from tenantgate.auth.scope import AssignmentRequest, BranchScope
from tenantgate.core import members
from tenantgate.core.errors import BranchConflict, EmailTaken, NotFound, PasswordTooLong
from tenantgate.core.session_context import load_session_context
from tenantgate.models.membership import Membership

from tests.helpers import assign, create_branch, create_membership, create_role, create_tenant


@pytest.mark.asyncio
async def test_create_member_with_branch_roles(db):
    tenant, hq = await create_tenant(db)
    westlands = await create_branch(db, tenant, "Westlands")
    cashier = await create_role(db, tenant, "Cashier", {})
    await db.commit()

    view = await members.create_member(
        db,
        tenant.id,
        name="Amy Cashier",
        email="Amy@Acme.io",
        password="counter-pass-1",
        assignments=[AssignmentRequest(cashier.id, BranchScope(westlands.id))],
    )
    assert view.membership.email == "amy@acme.io"
    assert view.membership.tenant_id == tenant.id
    assert view.membership.is_owner is False
    assert [(r.role_name, r.branch_name) for r in view.roles] == [("Cashier", "Westlands")]

    in_westlands = await members.list_members(db, tenant.id, branch_id=westlands.id)
    assert [v.membership.id for v in in_westlands] == [view.membership.id]
    assert await members.list_members(db, tenant.id, branch_id=hq.id) == []


@pytest.mark.asyncio
async def test_invalid_assignments_write_nothing(db):
    tenant, hq = await create_tenant(db)
    a = await create_role(db, tenant, "A", {})
    b = await create_role(db, tenant, "B", {})
    await db.commit()

    with pytest.raises(BranchConflict):
        await members.create_member(
            db,
            tenant.id,
            name="Bo",
            email="bo@acme.io",
            password="counter-pass-1",
            assignments=[AssignmentRequest(a.id, BranchScope(hq.id)), AssignmentRequest(b.id, BranchScope(hq.id))],
        )
    assert await members.list_members(db, tenant.id) == []


@pytest.mark.asyncio
async def test_overlong_password_is_refused_before_writing(db):
    tenant, _ = await create_tenant(db)
    await db.commit()

    with pytest.raises(PasswordTooLong) as exc:
        await members.create_member(
            db, tenant.id, name="Long", email="long@acme.io", password="x" * 100, assignments=[]
        )
    assert exc.value.status_code == 422
    assert await members.list_members(db, tenant.id) == []


@pytest.mark.asyncio
async def test_email_is_unique_within_tenant_only(db):
    t1, _ = await create_tenant(db)
    t2, _ = await create_tenant(db)
    await create_membership(db, "dup@acme.io", tenant=t1)
    await db.commit()

    with pytest.raises(EmailTaken):
        await members.create_member(
            db, t1.id, name="Dup", email="DUP@acme.io", password="counter-pass-1", assignments=[]
        )

    view = await members.create_member(
        db, t2.id, name="Dup", email="dup@acme.io", password="counter-pass-1", assignments=[]
    )
    assert view.membership.tenant_id == t2.id
    assert view.roles == ()


@pytest.mark.asyncio
async def test_member_lookup_is_tenant_scoped(db):
    t1, _ = await create_tenant(db)
    t2, _ = await create_tenant(db)
    outsider = await create_membership(db, "out@acme.io", tenant=t2)
    await db.commit()

    with pytest.raises(NotFound):
        await members.get_member(db, t1.id, outsider.id)
    with pytest.raises(NotFound):
        await members.set_member_roles(db, t1.id, outsider.id, [])


@pytest.mark.asyncio
async def test_session_context_lists_assigned_branches(db):
    tenant, hq = await create_tenant(db)
    zeta = await create_branch(db, tenant, "Zeta")
    alpha = await create_branch(db, tenant, "Alpha")
    await create_branch(db, tenant, "Unassigned")
    role = await create_role(db, tenant, "Clerk", {})
    member = await create_membership(db, "ctx@acme.io", tenant=tenant)
    await assign(db, member, role, zeta)
    await assign(db, member, role, alpha)
    await assign(db, member, role, hq)
    await db.commit()

    ctx = AuthContext(session_id="s", membership_id=member.id, tenant_id=tenant.id, email=member.email)
    session = await load_session_context(db, ctx)
    assert not session.tenant_wide
    assert [b.name for b in session.branches] == ["Head Office", "Alpha", "Zeta"]

    await members.set_member_roles(db, tenant.id, member.id, [])
    session = await load_session_context(db, ctx)
    assert session.roles == () and session.branches == ()

    refreshed = await db.get(Membership, member.id)
    assert refreshed.tenant_id == tenant.id
