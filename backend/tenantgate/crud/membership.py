# tenantgate/crud/membership.py
from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.models.membership import Membership
from tenantgate.models.role_assignment import RoleAssignment


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def list_memberships_by_email(db: AsyncSession, email: str) -> Sequence[Membership]:
    """Every membership the email holds, in creation order."""
    stmt = (
        select(Membership)
        .where(Membership.email == normalize_email(email))
        .order_by(Membership.created_at, Membership.id)
    )
    return (await db.execute(stmt)).scalars().all()


async def find_pending_membership(db: AsyncSession, email: str) -> Optional[Membership]:
    """The membership created at signup that has not been onboarded yet."""
    stmt = (
        select(Membership)
        .where(Membership.email == normalize_email(email))
        .where(Membership.tenant_id.is_(None))
        .order_by(Membership.created_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_membership_in_tenant(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    membership_id: uuid.UUID,
) -> Optional[Membership]:
    stmt = (
        select(Membership)
        .where(Membership.id == membership_id)
        .where(Membership.tenant_id == tenant_id)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def email_exists_in_tenant(db: AsyncSession, tenant_id: uuid.UUID, email: str) -> bool:
    stmt = (
        select(Membership.id)
        .where(Membership.tenant_id == tenant_id)
        .where(Membership.email == normalize_email(email))
    )
    return (await db.execute(stmt)).first() is not None


async def list_tenant_members(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    branch_id: Optional[uuid.UUID] = None,
) -> Sequence[Membership]:
    """
    Members of a tenant. With branch_id, only members holding a tenant-wide
    assignment or one scoped to that branch.
    """
    stmt = select(Membership).where(Membership.tenant_id == tenant_id)
    if branch_id is not None:
        scoped = (
            select(RoleAssignment.membership_id)
            .where(
                or_(
                    RoleAssignment.branch_id == branch_id,
                    RoleAssignment.branch_id.is_(None),
                )
            )
        )
        stmt = stmt.where(Membership.id.in_(scoped))
    stmt = stmt.order_by(Membership.created_at.desc(), Membership.email)
    return (await db.execute(stmt)).scalars().all()
