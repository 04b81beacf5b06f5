# backend/tenantgate/api/v1/members.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.api.deps.permissions import require_permission
from tenantgate.auth.context import AuthContext
from tenantgate.auth.permissions import Operation
from tenantgate.core import members as members_core
from tenantgate.core.members import MemberView
from tenantgate.core.menu_catalog import MENU_USERS
from tenantgate.db.session import get_db
from tenantgate.schemas.auth import AssignedRoleOut
from tenantgate.schemas.member import MemberCreate, MemberOut, MemberRolesUpdate, assignments_to_domain

router = APIRouter(prefix="/members", tags=["members"])


def _member_out(view: MemberView) -> MemberOut:
    m = view.membership
    return MemberOut(
        id=m.id,
        tenant_id=m.tenant_id,
        email=m.email,
        name=m.name,
        is_owner=m.is_owner,
        is_email_verified=m.is_email_verified,
        created_at=m.created_at,
        roles=[AssignedRoleOut.model_validate(r) for r in view.roles],
    )


@router.get("", response_model=List[MemberOut])
async def list_members(
    branch_id: Optional[uuid.UUID] = Query(default=None),
    ctx: AuthContext = Depends(require_permission(MENU_USERS, Operation.READ)),
    db: AsyncSession = Depends(get_db),
):
    views = await members_core.list_members(db, ctx.tenant_id, branch_id)
    return [_member_out(v) for v in views]


@router.get("/{membership_id}", response_model=MemberOut)
async def get_member(
    membership_id: uuid.UUID,
    ctx: AuthContext = Depends(require_permission(MENU_USERS, Operation.READ)),
    db: AsyncSession = Depends(get_db),
):
    return _member_out(await members_core.get_member(db, ctx.tenant_id, membership_id))


@router.post("", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def create_member(
    payload: MemberCreate,
    ctx: AuthContext = Depends(require_permission(MENU_USERS, Operation.ADD)),
    db: AsyncSession = Depends(get_db),
):
    view = await members_core.create_member(
        db,
        ctx.tenant_id,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        assignments=assignments_to_domain(payload.roles),
        created_by=ctx.membership_id,
    )
    return _member_out(view)


@router.put("/{membership_id}/roles", response_model=MemberOut)
async def set_member_roles(
    membership_id: uuid.UUID,
    payload: MemberRolesUpdate,
    ctx: AuthContext = Depends(require_permission(MENU_USERS, Operation.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    view = await members_core.set_member_roles(
        db,
        ctx.tenant_id,
        membership_id,
        assignments_to_domain(payload.roles),
        assigned_by=ctx.membership_id,
    )
    return _member_out(view)
