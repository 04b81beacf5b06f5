# backend/tenantgate/core/members.py

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.scope import AssignmentRequest
from tenantgate.core.errors import EmailTaken, NotFound
from tenantgate.core.observability import log_event
from tenantgate.core.registration import get_or_create_identity
from tenantgate.core.role_store import set_membership_roles, validate_assignment_set
from tenantgate.core.security import hash_password
from tenantgate.crud import rbac as rbac_crud
from tenantgate.crud.membership import (
    email_exists_in_tenant,
    get_membership_in_tenant,
    list_tenant_members,
    normalize_email,
)
from tenantgate.models.membership import Membership


@dataclass(frozen=True)
class AssignedRole:
    role_id: uuid.UUID
    role_name: str
    role_type: str
    branch_id: Optional[uuid.UUID]
    branch_name: Optional[str]


@dataclass(frozen=True)
class MemberView:
    membership: Membership
    roles: tuple[AssignedRole, ...]


async def describe_members(db: AsyncSession, memberships: Sequence[Membership]) -> list[MemberView]:
    by_member: dict[uuid.UUID, list[AssignedRole]] = {}
    for assignment, role, branch in await rbac_crud.list_assignments_detailed(db, [m.id for m in memberships]):
        by_member.setdefault(assignment.membership_id, []).append(
            AssignedRole(
                role_id=role.id,
                role_name=role.name,
                role_type=role.role_type,
                branch_id=branch.id if branch else None,
                branch_name=branch.name if branch else None,
            )
        )
    return [MemberView(membership=m, roles=tuple(by_member.get(m.id, ()))) for m in memberships]


async def list_members(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    branch_id: Optional[uuid.UUID] = None,
) -> list[MemberView]:
    return await describe_members(db, await list_tenant_members(db, tenant_id, branch_id))


async def get_member(db: AsyncSession, tenant_id: uuid.UUID, membership_id: uuid.UUID) -> MemberView:
    membership = await get_membership_in_tenant(db, tenant_id, membership_id)
    if membership is None:
        raise NotFound("Member not found.")
    return (await describe_members(db, [membership]))[0]


async def create_member(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    name: str,
    email: str,
    password: str,
    assignments: Sequence[AssignmentRequest],
    created_by: Optional[uuid.UUID] = None,
) -> MemberView:
    email = normalize_email(email)
    if await email_exists_in_tenant(db, tenant_id, email):
        raise EmailTaken()

    # Nothing is written unless the whole assignment set is valid.
    plan = await validate_assignment_set(db, tenant_id, assignments)

    password_hash = await asyncio.to_thread(hash_password, password)
    identity = await get_or_create_identity(db, email, name)
    membership = Membership(
        identity_id=identity.id,
        tenant_id=tenant_id,
        email=email,
        name=" ".join(name.split()),
        password_hash=password_hash,
        is_owner=False,
        is_email_verified=False,
    )
    db.add(membership)
    try:
        await db.flush()
        await rbac_crud.replace_assignments(db, membership.id, plan, assigned_by=created_by)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise EmailTaken()

    log_event("member_created", tenant_id=tenant_id, membership_id=membership.id)
    return (await describe_members(db, [membership]))[0]


async def set_member_roles(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    membership_id: uuid.UUID,
    assignments: Sequence[AssignmentRequest],
    *,
    assigned_by: Optional[uuid.UUID] = None,
) -> MemberView:
    membership = await get_membership_in_tenant(db, tenant_id, membership_id)
    if membership is None:
        raise NotFound("Member not found.")
    await set_membership_roles(db, membership, assignments, assigned_by=assigned_by)
    log_event("member_roles_replaced", tenant_id=tenant_id, membership_id=membership.id)
    return (await describe_members(db, [membership]))[0]
