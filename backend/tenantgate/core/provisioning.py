# backend/tenantgate/core/provisioning.py
"""
Onboarding: turn a verified pending membership into the owner of a new tenant.

Tenant, HQ branch, membership link, default roles and grants, owner
assignment and the first subscription are written in one transaction under
PROVISIONING_TIMEOUT_SECONDS. Any failure rolls everything back.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.permissions import PermissionSet
from tenantgate.auth.scope import TenantWidePlan
from tenantgate.core.clock import utcnow
from tenantgate.core.config import settings
from tenantgate.core.errors import (
    AlreadyOnboarded,
    NotFound,
    ProvisioningFailure,
    TenantGateError,
    VerificationRequired,
)
from tenantgate.core.observability import log_event
from tenantgate.core.tenant_sessions import OpenedSession, open_tenant_session
from tenantgate.crud import rbac as rbac_crud
from tenantgate.models.branch import Branch
from tenantgate.models.membership import Membership
from tenantgate.models.menu_node import MenuNode
from tenantgate.models.role import Role, RoleType
from tenantgate.models.subscription import SubscriptionPlan, TenantSubscription
from tenantgate.models.tenant import Tenant
from tenantgate.services.email import EmailKind, EmailMessage, EmailSender

ROLE_SUPER_ADMIN = "Super Admin"
ROLE_ADMIN = "Admin"
ROLE_MANAGER = "Manager"


@dataclass(frozen=True)
class DefaultRole:
    name: str
    description: str
    role_type: RoleType
    grant: PermissionSet


DEFAULT_ROLES: tuple[DefaultRole, ...] = (
    DefaultRole(
        ROLE_SUPER_ADMIN,
        "Full access across all branches",
        RoleType.SYSTEM,
        PermissionSet(read=True, add=True, update=True, delete=True),
    ),
    DefaultRole(
        ROLE_ADMIN,
        "Administrative access with limited permissions",
        RoleType.CUSTOM,
        PermissionSet(read=True, add=True, update=True),
    ),
    DefaultRole(
        ROLE_MANAGER,
        "Branch-level management access",
        RoleType.CUSTOM,
        PermissionSet(read=True, add=True),
    ),
)


@dataclass(frozen=True)
class ProvisionResult:
    tenant: Tenant
    branch: Branch
    membership: Membership
    roles: dict[str, Role]
    subscription: TenantSubscription
    opened: OpenedSession


async def _resolve_plan(db: AsyncSession, plan_id: Optional[uuid.UUID]) -> SubscriptionPlan:
    if plan_id is not None:
        plan = await db.get(SubscriptionPlan, plan_id)
        if plan is None or not plan.is_active:
            raise NotFound("Subscription plan not found.")
        return plan

    plan = (
        await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.name == settings.DEFAULT_PLAN_NAME))
    ).scalar_one_or_none()
    if plan is None:
        # Deployment problem, not caller input.
        raise RuntimeError(f"default plan {settings.DEFAULT_PLAN_NAME!r} is missing")
    return plan


async def _create_default_roles(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> dict[str, Role]:
    menu_ids = (await db.execute(select(MenuNode.id))).scalars().all()
    roles: dict[str, Role] = {}
    for seed in DEFAULT_ROLES:
        role = Role(
            tenant_id=tenant_id,
            name=seed.name,
            description=seed.description,
            role_type=seed.role_type.value,
            is_active=True,
            created_by_membership_id=owner_id,
        )
        db.add(role)
        await db.flush()
        await rbac_crud.replace_role_permissions(db, role.id, {menu_id: seed.grant for menu_id in menu_ids})
        roles[seed.name] = role
    return roles


async def _provision(
    db: AsyncSession,
    membership: Membership,
    *,
    tenant_name: str,
    hq_branch_name: str,
    plan: SubscriptionPlan,
) -> tuple[Tenant, Branch, dict[str, Role], TenantSubscription]:
    tenant = Tenant(name=tenant_name.strip(), is_active=True)
    db.add(tenant)
    await db.flush()

    branch = Branch(tenant_id=tenant.id, name=hq_branch_name.strip(), is_hq=True, is_active=True)
    db.add(branch)

    # tenant_id is set exactly once
    res = await db.execute(
        update(Membership)
        .where(Membership.id == membership.id)
        .where(Membership.tenant_id.is_(None))
        .values(tenant_id=tenant.id, is_owner=True)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise AlreadyOnboarded()

    roles = await _create_default_roles(db, tenant.id, membership.id)
    await rbac_crud.replace_assignments(
        db,
        membership.id,
        TenantWidePlan(role_id=roles[ROLE_SUPER_ADMIN].id),
        assigned_by=membership.id,
    )

    start = utcnow()
    subscription = TenantSubscription(
        tenant_id=tenant.id,
        plan_id=plan.id,
        start_date=start,
        end_date=start + timedelta(days=plan.duration_days or 30),
        is_active=True,
        payment_status="PENDING" if (plan.price or Decimal("0")) > 0 else "FREE",
    )
    db.add(subscription)
    await db.flush()
    await db.commit()
    return tenant, branch, roles, subscription


async def provision_tenant(
    db: AsyncSession,
    sender: EmailSender,
    membership_id: uuid.UUID,
    *,
    tenant_name: str,
    hq_branch_name: str = "Head Office",
    plan_id: Optional[uuid.UUID] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ProvisionResult:
    membership = await db.get(Membership, membership_id)
    if membership is None:
        raise NotFound("Membership not found.")
    if not membership.is_email_verified:
        raise VerificationRequired()
    if membership.tenant_id is not None:
        raise AlreadyOnboarded()

    plan = None
    if plan_id is not None:
        plan = await _resolve_plan(db, plan_id)

    try:
        if plan is None:
            plan = await _resolve_plan(db, None)
        tenant, branch, roles, subscription = await asyncio.wait_for(
            _provision(db, membership, tenant_name=tenant_name, hq_branch_name=hq_branch_name, plan=plan),
            timeout=settings.PROVISIONING_TIMEOUT_SECONDS,
        )
    except TenantGateError:
        await db.rollback()
        raise
    except Exception as exc:
        await db.rollback()
        log_event(
            "provisioning_rolled_back",
            level=logging.ERROR,
            membership_id=membership_id,
            error=type(exc).__name__,
        )
        raise ProvisioningFailure() from exc

    await db.refresh(membership)
    log_event("tenant_provisioned", tenant_id=tenant.id, membership_id=membership.id)

    try:
        await sender.send(
            EmailMessage(
                kind=EmailKind.WELCOME,
                to=membership.email,
                name=membership.name,
                context={"tenant_name": tenant.name, "tenant_id": str(tenant.id)},
            )
        )
    except Exception as exc:
        # Welcome mail is best-effort; the tenant already exists.
        log_event("welcome_email_failed", level=logging.WARNING, tenant_id=tenant.id, error=type(exc).__name__)

    opened = await open_tenant_session(db, membership, ip_address=ip_address, user_agent=user_agent)
    return ProvisionResult(
        tenant=tenant,
        branch=branch,
        membership=membership,
        roles=roles,
        subscription=subscription,
        opened=opened,
    )
