from __future__ import annotations

import uuid
from typing import Mapping, Optional

from sqlalchemy import select

from tenantgate.auth.permissions import PermissionSet
from tenantgate.core.security import hash_password
from tenantgate.crud import rbac as rbac_crud
from tenantgate.models.branch import Branch
from tenantgate.models.identity import Identity
from tenantgate.models.membership import Membership
from tenantgate.models.role import Role, RoleType
from tenantgate.models.role_assignment import RoleAssignment
from tenantgate.models.tenant import Tenant

READ_ONLY = PermissionSet(read=True)
READ_UPDATE = PermissionSet(read=True, update=True)


async def create_tenant(db, name: Optional[str] = None) -> tuple[Tenant, Branch]:
    tenant = Tenant(name=name or f"Tenant {uuid.uuid4().hex[:8]}", is_active=True)
    db.add(tenant)
    await db.flush()
    hq = await create_branch(db, tenant, "Head Office", is_hq=True)
    return tenant, hq


async def create_branch(db, tenant: Tenant, name: str, is_hq: bool = False, is_active: bool = True) -> Branch:
    branch = Branch(tenant_id=tenant.id, name=name, is_hq=is_hq, is_active=is_active)
    db.add(branch)
    await db.flush()
    return branch


async def create_membership(
    db,
    email: str,
    password: Optional[str] = "correct-horse-1",
    tenant: Optional[Tenant] = None,
    *,
    verified: bool = True,
    is_owner: bool = False,
) -> Membership:
    email = email.strip().lower()
    identity = (await db.execute(select(Identity).where(Identity.email == email))).scalar_one_or_none()
    if identity is None:
        identity = Identity(email=email, name="Test User")
        db.add(identity)
        await db.flush()

    m = Membership(
        identity_id=identity.id,
        tenant_id=tenant.id if tenant else None,
        email=email,
        name="Test User",
        password_hash=hash_password(password) if password else None,
        is_owner=is_owner,
        is_email_verified=verified,
    )
    db.add(m)
    await db.flush()
    return m


async def create_role(
    db,
    tenant: Tenant,
    name: str,
    grants: Mapping[str, PermissionSet],
    *,
    role_type: RoleType = RoleType.CUSTOM,
    is_active: bool = True,
) -> Role:
    role = Role(tenant_id=tenant.id, name=name, role_type=role_type.value, is_active=is_active)
    db.add(role)
    await db.flush()
    ids_by_key = await rbac_crud.menu_ids_by_key(db)
    await rbac_crud.replace_role_permissions(db, role.id, {ids_by_key[k]: p for k, p in grants.items()})
    return role


async def assign(db, membership: Membership, role: Role, branch: Optional[Branch] = None) -> RoleAssignment:
    ra = RoleAssignment(
        membership_id=membership.id,
        role_id=role.id,
        branch_id=branch.id if branch else None,
    )
    db.add(ra)
    await db.flush()
    return ra
