# backend/tenantgate/core/session_context.py

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.context import AuthContext
from tenantgate.core.errors import SessionNotFound
from tenantgate.core.members import AssignedRole, describe_members
from tenantgate.models.branch import Branch
from tenantgate.models.membership import Membership
from tenantgate.models.tenant import Tenant


@dataclass(frozen=True)
class SessionContext:
    ctx: AuthContext
    name: str | None
    tenant_name: str
    roles: tuple[AssignedRole, ...]
    branches: tuple[Branch, ...]

    @property
    def tenant_wide(self) -> bool:
        return any(r.branch_id is None for r in self.roles)


async def load_session_context(db: AsyncSession, ctx: AuthContext) -> SessionContext:
    """
    Claims plus role summary and the branches the membership may work in:
    every active branch for tenant-wide roles, otherwise its assigned ones.
    HQ first, then by name.
    """
    membership = await db.get(Membership, ctx.membership_id)
    tenant = await db.get(Tenant, ctx.tenant_id)
    if membership is None or tenant is None:
        raise SessionNotFound()

    view = (await describe_members(db, [membership]))[0]

    if not view.roles:
        return SessionContext(ctx, membership.name, tenant.name, (), ())

    stmt = select(Branch).where(Branch.tenant_id == ctx.tenant_id).where(Branch.is_active.is_(True))
    if not any(r.branch_id is None for r in view.roles):
        stmt = stmt.where(Branch.id.in_({r.branch_id for r in view.roles}))
    stmt = stmt.order_by(Branch.is_hq.desc(), Branch.name)
    branches = tuple((await db.execute(stmt)).scalars().all())

    return SessionContext(ctx, membership.name, tenant.name, view.roles, branches)
