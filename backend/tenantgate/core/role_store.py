# backend/tenantgate/core/role_store.py
"""
Role store and assignment validation.

Roles are tenant-owned permission bundles. Their permission set is always
replaced wholesale; assignments of a membership are validated as a set and
then replaced atomically.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.permissions import PermissionSet
from tenantgate.auth.scope import AssignmentPlan, AssignmentRequest, referenced_ids, validate_assignments
from tenantgate.core.errors import DuplicateRoleName, NotFound, RoleInUse, SystemRoleProtected, ValidationFailure
from tenantgate.core.observability import log_event
from tenantgate.crud import rbac as rbac_crud
from tenantgate.models.membership import Membership
from tenantgate.models.role import Role, RoleType
from tenantgate.models.role_permission import RolePermission


@dataclass(frozen=True)
class RoleSummary:
    role: Role
    assigned_count: int


async def validate_assignment_set(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    requests: Sequence[AssignmentRequest],
) -> AssignmentPlan:
    role_ids, branch_ids = referenced_ids(requests)
    return validate_assignments(
        requests,
        active_role_ids=await rbac_crud.active_role_ids_in_tenant(db, tenant_id, role_ids),
        tenant_branch_ids=await rbac_crud.branch_ids_in_tenant(db, tenant_id, branch_ids),
    )


async def set_membership_roles(
    db: AsyncSession,
    membership: Membership,
    requests: Sequence[AssignmentRequest],
    *,
    assigned_by: Optional[uuid.UUID] = None,
) -> AssignmentPlan:
    if membership.tenant_id is None:
        raise NotFound("Membership is not linked to an organization.")

    plan = await validate_assignment_set(db, membership.tenant_id, requests)
    await rbac_crud.replace_assignments(db, membership.id, plan, assigned_by=assigned_by)
    await db.commit()
    return plan


async def _permissions_by_menu_id(
    db: AsyncSession,
    permissions: Mapping[str, PermissionSet],
) -> dict[uuid.UUID, PermissionSet]:
    # Unknown menu keys are ignored so role payloads survive catalog changes.
    ids_by_key = await rbac_crud.menu_ids_by_key(db)
    return {ids_by_key[key]: perms for key, perms in permissions.items() if key in ids_by_key}


# ---------------------------------------------------------
# Queries
# ---------------------------------------------------------
async def list_roles(db: AsyncSession, tenant_id: uuid.UUID) -> list[RoleSummary]:
    roles = (
        await db.execute(select(Role).where(Role.tenant_id == tenant_id).order_by(Role.created_at.desc(), Role.name))
    ).scalars().all()
    counts = await rbac_crud.assignment_counts_for_tenant(db, tenant_id)
    return [RoleSummary(role=r, assigned_count=counts.get(r.id, 0)) for r in roles]


async def get_role(db: AsyncSession, tenant_id: uuid.UUID, role_id: uuid.UUID) -> Role:
    role = await rbac_crud.get_role_in_tenant(db, tenant_id, role_id)
    if role is None:
        raise NotFound("Role not found.")
    return role


async def get_role_permissions(db: AsyncSession, role: Role) -> dict[str, PermissionSet]:
    """Permissions keyed by menu key. Grants on menus missing from the catalog are skipped."""
    catalog = await rbac_crud.load_catalog(db)
    out: dict[str, PermissionSet] = {}
    for grant in await rbac_crud.list_grants(db, [role.id]):
        entry = catalog.get(grant.menu_id)
        if entry is None:
            continue
        out[entry.key] = grant.permissions
    return out


def _clean_name(name: str) -> str:
    cleaned = " ".join(name.split())
    if not cleaned:
        raise ValidationFailure("Role name must not be blank.", field="name")
    return cleaned


# ---------------------------------------------------------
# Commands
# ---------------------------------------------------------
async def create_role(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    name: str,
    description: Optional[str],
    permissions: Mapping[str, PermissionSet],
    created_by: Optional[uuid.UUID] = None,
    role_type: RoleType = RoleType.CUSTOM,
) -> Role:
    name = _clean_name(name)
    if await rbac_crud.role_name_taken(db, tenant_id, name):
        raise DuplicateRoleName()

    role = Role(
        tenant_id=tenant_id,
        name=name,
        description=description,
        role_type=role_type.value,
        is_active=True,
        created_by_membership_id=created_by,
    )
    db.add(role)
    try:
        await db.flush()
        await rbac_crud.replace_role_permissions(db, role.id, await _permissions_by_menu_id(db, permissions))
        await db.commit()
    except IntegrityError:
        # concurrent insert of the same name
        await db.rollback()
        raise DuplicateRoleName()

    await db.refresh(role)
    return role


async def update_role(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    role_id: uuid.UUID,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    permissions: Optional[Mapping[str, PermissionSet]] = None,
    is_active: Optional[bool] = None,
) -> Role:
    role = await get_role(db, tenant_id, role_id)

    if name is not None:
        name = _clean_name(name)
    if name is not None and name != role.name:
        if await rbac_crud.role_name_taken(db, tenant_id, name, exclude_role_id=role.id):
            raise DuplicateRoleName()
        role.name = name

    if description is not None:
        role.description = description

    if is_active is not None and is_active != role.is_active:
        if role.is_system and not is_active:
            raise SystemRoleProtected()
        role.is_active = is_active

    try:
        await db.flush()
        if permissions is not None:
            await rbac_crud.replace_role_permissions(db, role.id, await _permissions_by_menu_id(db, permissions))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateRoleName()

    await db.refresh(role)
    return role


async def delete_role(db: AsyncSession, tenant_id: uuid.UUID, role_id: uuid.UUID) -> Role:
    role = await get_role(db, tenant_id, role_id)

    if role.is_system:
        log_event("role_delete_refused", level=logging.WARNING, role_id=role.id, reason="system")
        raise SystemRoleProtected()

    in_use = await rbac_crud.count_role_assignments(db, role.id)
    if in_use > 0:
        log_event("role_delete_refused", level=logging.WARNING, role_id=role.id, reason="in_use", count=in_use)
        raise RoleInUse(in_use)

    await db.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    await db.delete(role)
    await db.commit()
    log_event("role_deleted", role_id=role.id, tenant_id=tenant_id)
    return role
