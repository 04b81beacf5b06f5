# tests/test_role_store.py
from __future__ import annotations

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from tenantgate.auth.permissions import FULL_ACCESS, PermissionSet
from tenantgate.auth.scope import AssignmentRequest, BranchScope
from tenantgate.core import role_store
from tenantgate.core.errors import (
    DuplicateRoleName,
    MixedScope,
    RoleInUse,
    SystemRoleProtected,
    UnknownBranch,
    UnknownRole,
    ValidationFailure,
)
from tenantgate.crud import rbac as rbac_crud
from tenantgate.models.role import RoleType
from tenantgate.models.role_assignment import RoleAssignment
from tenantgate.models.role_permission import RolePermission
from tenantgate.schemas.role import RoleUpdate

from tests.helpers import READ_ONLY, assign, create_branch, create_membership, create_role, create_tenant


@pytest.mark.asyncio
async def test_delete_unassigned_custom_role_then_in_use(db):
    tenant, hq = await create_tenant(db)
    member = await create_membership(db, "clerk@acme.io", tenant=tenant)
    role = await create_role(db, tenant, "Clerk", {"dashboard": READ_ONLY})
    other = await create_role(db, tenant, "Auditor", {"dashboard": READ_ONLY})
    await db.commit()

    await role_store.delete_role(db, tenant.id, role.id)
    remaining = await db.scalar(select(func.count(RolePermission.id)).where(RolePermission.role_id == role.id))
    assert remaining == 0
    assert await rbac_crud.get_role_in_tenant(db, tenant.id, role.id) is None

    await assign(db, member, other, hq)
    await db.commit()

    with pytest.raises(RoleInUse) as exc:
        await role_store.delete_role(db, tenant.id, other.id)
    assert exc.value.count == 1
    assert exc.value.to_detail()["assigned_count"] == 1


@pytest.mark.asyncio
async def test_system_role_is_never_deletable(db):
    tenant, _ = await create_tenant(db)
    role = await create_role(db, tenant, "Super Admin", {"dashboard": FULL_ACCESS}, role_type=RoleType.SYSTEM)
    await db.commit()

    with pytest.raises(SystemRoleProtected):
        await role_store.delete_role(db, tenant.id, role.id)

    with pytest.raises(SystemRoleProtected):
        await role_store.update_role(db, tenant.id, role.id, is_active=False)


@pytest.mark.asyncio
async def test_permissions_are_replaced_not_patched(db):
    tenant, _ = await create_tenant(db)
    role = await role_store.create_role(
        db,
        tenant.id,
        name="Editor",
        description=None,
        permissions={"users": PermissionSet(read=True, add=True), "roles": READ_ONLY, "no-such-menu": FULL_ACCESS},
    )
    assert await role_store.get_role_permissions(db, role) == {
        "users": PermissionSet(read=True, add=True),
        "roles": READ_ONLY,
    }

    await role_store.update_role(db, tenant.id, role.id, permissions={"dashboard": READ_ONLY})
    assert await role_store.get_role_permissions(db, role) == {"dashboard": READ_ONLY}

    # no permissions argument leaves the set alone
    await role_store.update_role(db, tenant.id, role.id, description="edits things")
    assert await role_store.get_role_permissions(db, role) == {"dashboard": READ_ONLY}


@pytest.mark.asyncio
async def test_role_names_are_unique_per_tenant_case_insensitive(db):
    tenant, _ = await create_tenant(db)
    other_tenant, _ = await create_tenant(db)
    await db.commit()

    await role_store.create_role(db, tenant.id, name="Cashier", description=None, permissions={})
    with pytest.raises(DuplicateRoleName):
        await role_store.create_role(db, tenant.id, name="  cashier ", description=None, permissions={})

    # same name in another tenant is fine
    await role_store.create_role(db, other_tenant.id, name="Cashier", description=None, permissions={})


@pytest.mark.asyncio
async def test_blank_role_name_is_refused_on_update(db):
    tenant, _ = await create_tenant(db)
    await db.commit()
    role = await role_store.create_role(db, tenant.id, name="  Shift   Lead ", description=None, permissions={})
    assert role.name == "Shift Lead"

    with pytest.raises(ValidationFailure):
        await role_store.update_role(db, tenant.id, role.id, name="   ")
    assert (await role_store.get_role(db, tenant.id, role.id)).name == "Shift Lead"

    with pytest.raises(ValidationError):
        RoleUpdate(name="   ")
    assert RoleUpdate(name=" Night  Lead ").name == "Night Lead"
    assert RoleUpdate().name is None


@pytest.mark.asyncio
async def test_list_roles_reports_assignment_counts(db):
    tenant, hq = await create_tenant(db)
    role = await create_role(db, tenant, "Clerk", {})
    unused = await create_role(db, tenant, "Unused", {})
    for i in range(2):
        m = await create_membership(db, f"clerk{i}@acme.io", tenant=tenant)
        await assign(db, m, role, hq)
    await db.commit()

    counts = {s.role.name: s.assigned_count for s in await role_store.list_roles(db, tenant.id)}
    assert counts == {"Clerk": 2, "Unused": 0}
    assert unused.id is not None


@pytest.mark.asyncio
async def test_set_membership_roles_validates_against_tenant(db):
    tenant, hq = await create_tenant(db)
    other_tenant, other_hq = await create_tenant(db)
    b2 = await create_branch(db, tenant, "Westlands")
    member = await create_membership(db, "staff@acme.io", tenant=tenant)
    manager = await create_role(db, tenant, "Manager", {})
    clerk = await create_role(db, tenant, "Clerk", {})
    retired = await create_role(db, tenant, "Retired", {}, is_active=False)
    foreign = await create_role(db, other_tenant, "Foreign", {})
    await db.commit()

    with pytest.raises(UnknownRole):
        await role_store.set_membership_roles(db, member, [AssignmentRequest(foreign.id)])
    with pytest.raises(UnknownRole):
        await role_store.set_membership_roles(db, member, [AssignmentRequest(retired.id)])
    with pytest.raises(UnknownBranch):
        await role_store.set_membership_roles(db, member, [AssignmentRequest(clerk.id, BranchScope(other_hq.id))])
    with pytest.raises(MixedScope):
        await role_store.set_membership_roles(
            db, member, [AssignmentRequest(manager.id), AssignmentRequest(clerk.id, BranchScope(hq.id))]
        )

    await role_store.set_membership_roles(
        db,
        member,
        [AssignmentRequest(manager.id, BranchScope(hq.id)), AssignmentRequest(clerk.id, BranchScope(b2.id))],
    )
    rows = await rbac_crud.list_assignment_rows(db, member.id)
    assert {(r.role_id, r.branch_id) for r in rows} == {(manager.id, hq.id), (clerk.id, b2.id)}

    # full replace
    await role_store.set_membership_roles(db, member, [AssignmentRequest(manager.id)])
    total = await db.scalar(select(func.count(RoleAssignment.id)).where(RoleAssignment.membership_id == member.id))
    assert total == 1
    rows = await rbac_crud.list_assignment_rows(db, member.id)
    assert [(r.role_id, r.branch_id) for r in rows] == [(manager.id, None)]
