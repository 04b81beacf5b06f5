# tenantgate/crud/rbac.py
from __future__ import annotations

import uuid
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.permissions import AssignmentRow, CatalogEntry, Grant, PermissionSet
from tenantgate.auth.scope import AssignmentPlan
from tenantgate.models.branch import Branch
from tenantgate.models.menu_node import MenuNode
from tenantgate.models.role import Role
from tenantgate.models.role_assignment import RoleAssignment
from tenantgate.models.role_permission import RolePermission


# ---------------------------------------------------------
# Roles / branches
# ---------------------------------------------------------
async def get_role_in_tenant(db: AsyncSession, tenant_id: uuid.UUID, role_id: uuid.UUID) -> Optional[Role]:
    stmt = select(Role).where(Role.id == role_id).where(Role.tenant_id == tenant_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def role_name_taken(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    name: str,
    exclude_role_id: Optional[uuid.UUID] = None,
) -> bool:
    stmt = select(Role.id).where(Role.tenant_id == tenant_id).where(func.lower(Role.name) == name.strip().lower())
    if exclude_role_id is not None:
        stmt = stmt.where(Role.id != exclude_role_id)
    return (await db.execute(stmt)).first() is not None


async def active_role_ids_in_tenant(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    role_ids: Iterable[uuid.UUID],
) -> set[uuid.UUID]:
    ids = list(role_ids)
    if not ids:
        return set()
    stmt = (
        select(Role.id)
        .where(Role.tenant_id == tenant_id)
        .where(Role.is_active.is_(True))
        .where(Role.id.in_(ids))
    )
    return set((await db.execute(stmt)).scalars().all())


async def branch_ids_in_tenant(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    branch_ids: Iterable[uuid.UUID],
) -> set[uuid.UUID]:
    ids = list(branch_ids)
    if not ids:
        return set()
    stmt = select(Branch.id).where(Branch.tenant_id == tenant_id).where(Branch.id.in_(ids))
    return set((await db.execute(stmt)).scalars().all())


async def count_role_assignments(db: AsyncSession, role_id: uuid.UUID) -> int:
    stmt = select(func.count(RoleAssignment.id)).where(RoleAssignment.role_id == role_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def assignment_counts_for_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> dict[uuid.UUID, int]:
    stmt = (
        select(RoleAssignment.role_id, func.count(RoleAssignment.id))
        .join(Role, Role.id == RoleAssignment.role_id)
        .where(Role.tenant_id == tenant_id)
        .group_by(RoleAssignment.role_id)
    )
    return {role_id: int(n) for role_id, n in (await db.execute(stmt)).all()}


# ---------------------------------------------------------
# Assignments
# ---------------------------------------------------------
async def list_assignment_rows(db: AsyncSession, membership_id: uuid.UUID) -> list[AssignmentRow]:
    """Assignments of a membership whose role is still active."""
    stmt = (
        select(RoleAssignment.role_id, RoleAssignment.branch_id)
        .join(Role, Role.id == RoleAssignment.role_id)
        .where(RoleAssignment.membership_id == membership_id)
        .where(Role.is_active.is_(True))
        .order_by(RoleAssignment.created_at, RoleAssignment.id)
    )
    return [AssignmentRow(role_id=r, branch_id=b) for r, b in (await db.execute(stmt)).all()]


async def list_assignments_detailed(
    db: AsyncSession,
    membership_ids: Sequence[uuid.UUID],
) -> Sequence[tuple[RoleAssignment, Role, Optional[Branch]]]:
    if not membership_ids:
        return []
    stmt = (
        select(RoleAssignment, Role, Branch)
        .join(Role, Role.id == RoleAssignment.role_id)
        .outerjoin(Branch, Branch.id == RoleAssignment.branch_id)
        .where(RoleAssignment.membership_id.in_(list(membership_ids)))
        .order_by(RoleAssignment.created_at, RoleAssignment.id)
    )
    return [tuple(row) for row in (await db.execute(stmt)).all()]


async def replace_assignments(
    db: AsyncSession,
    membership_id: uuid.UUID,
    plan: AssignmentPlan,
    assigned_by: Optional[uuid.UUID] = None,
) -> None:
    """Full replace; caller owns the transaction."""
    await db.execute(delete(RoleAssignment).where(RoleAssignment.membership_id == membership_id))
    for role_id, branch_id in plan.rows():
        db.add(
            RoleAssignment(
                membership_id=membership_id,
                role_id=role_id,
                branch_id=branch_id,
                assigned_by_membership_id=assigned_by,
            )
        )
    await db.flush()


# ---------------------------------------------------------
# Permissions / catalog
# ---------------------------------------------------------
async def list_grants(db: AsyncSession, role_ids: Iterable[uuid.UUID]) -> list[Grant]:
    ids = list(role_ids)
    if not ids:
        return []
    stmt = select(RolePermission).where(RolePermission.role_id.in_(ids))
    return [
        Grant(
            role_id=rp.role_id,
            menu_id=rp.menu_id,
            permissions=PermissionSet(
                read=rp.can_read,
                add=rp.can_add,
                update=rp.can_update,
                delete=rp.can_delete,
            ),
        )
        for rp in (await db.execute(stmt)).scalars().all()
    ]


async def load_catalog(db: AsyncSession) -> dict[uuid.UUID, CatalogEntry]:
    rows = (await db.execute(select(MenuNode))).scalars().all()
    return {
        m.id: CatalogEntry(
            id=m.id,
            key=m.key,
            name=m.name,
            path=m.path,
            icon=m.icon,
            parent_id=m.parent_id,
            menu_group=m.menu_group,
            sort_order=m.sort_order,
            is_main_menu=m.is_main_menu,
            is_footer_menu=m.is_footer_menu,
        )
        for m in rows
    }


async def menu_ids_by_key(db: AsyncSession) -> dict[str, uuid.UUID]:
    rows = (await db.execute(select(MenuNode.key, MenuNode.id))).all()
    return {key: menu_id for key, menu_id in rows}


async def replace_role_permissions(
    db: AsyncSession,
    role_id: uuid.UUID,
    permissions: Mapping[uuid.UUID, PermissionSet],
) -> None:
    """Discard every grant of the role and insert the new set. No patch semantics."""
    await db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
    for menu_id, perms in permissions.items():
        db.add(
            RolePermission(
                role_id=role_id,
                menu_id=menu_id,
                can_read=perms.read,
                can_add=perms.add,
                can_update=perms.update,
                can_delete=perms.delete,
            )
        )
    await db.flush()
