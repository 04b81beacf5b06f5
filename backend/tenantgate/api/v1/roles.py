# backend/tenantgate/api/v1/roles.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.api.deps.permissions import require_permission
from tenantgate.auth.context import AuthContext
from tenantgate.auth.permissions import Operation
from tenantgate.core import role_store
from tenantgate.core.menu_catalog import MENU_ROLES
from tenantgate.crud import rbac as rbac_crud
from tenantgate.db.session import get_db
from tenantgate.models.role import Role
from tenantgate.schemas.role import (
    PermissionFlags,
    RoleCreate,
    RoleDetailOut,
    RoleOut,
    RoleUpdate,
    permissions_to_domain,
)

router = APIRouter(prefix="/roles", tags=["roles"])


async def _detail(db: AsyncSession, role: Role) -> RoleDetailOut:
    perms = await role_store.get_role_permissions(db, role)
    out = RoleDetailOut.model_validate(role)
    out.assigned_count = await rbac_crud.count_role_assignments(db, role.id)
    out.permissions = {key: PermissionFlags.from_domain(p) for key, p in perms.items()}
    return out


@router.get("", response_model=List[RoleOut])
async def list_roles(
    ctx: AuthContext = Depends(require_permission(MENU_ROLES, Operation.READ)),
    db: AsyncSession = Depends(get_db),
):
    summaries = await role_store.list_roles(db, ctx.tenant_id)
    out = []
    for s in summaries:
        item = RoleOut.model_validate(s.role)
        item.assigned_count = s.assigned_count
        out.append(item)
    return out


@router.get("/{role_id}", response_model=RoleDetailOut)
async def get_role(
    role_id: uuid.UUID,
    ctx: AuthContext = Depends(require_permission(MENU_ROLES, Operation.READ)),
    db: AsyncSession = Depends(get_db),
):
    role = await role_store.get_role(db, ctx.tenant_id, role_id)
    return await _detail(db, role)


@router.post("", response_model=RoleDetailOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    ctx: AuthContext = Depends(require_permission(MENU_ROLES, Operation.ADD)),
    db: AsyncSession = Depends(get_db),
):
    role = await role_store.create_role(
        db,
        ctx.tenant_id,
        name=payload.name,
        description=payload.description,
        permissions=permissions_to_domain(payload.permissions) or {},
        created_by=ctx.membership_id,
    )
    return await _detail(db, role)


@router.patch("/{role_id}", response_model=RoleDetailOut)
async def update_role(
    role_id: uuid.UUID,
    payload: RoleUpdate,
    ctx: AuthContext = Depends(require_permission(MENU_ROLES, Operation.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    role = await role_store.update_role(
        db,
        ctx.tenant_id,
        role_id,
        name=payload.name,
        description=payload.description,
        permissions=permissions_to_domain(payload.permissions),
        is_active=payload.is_active,
    )
    return await _detail(db, role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: uuid.UUID,
    ctx: AuthContext = Depends(require_permission(MENU_ROLES, Operation.DELETE)),
    db: AsyncSession = Depends(get_db),
) -> None:
    await role_store.delete_role(db, ctx.tenant_id, role_id)
