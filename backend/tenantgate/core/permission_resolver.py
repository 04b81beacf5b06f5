# backend/tenantgate/core/permission_resolver.py

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.auth.permissions import EMPTY_NAVIGATION, Navigation, eligible_role_ids, resolve_navigation
from tenantgate.core.errors import BranchMismatch, InactiveBranch, NotFound
from tenantgate.crud import rbac as rbac_crud
from tenantgate.models.branch import Branch


async def resolve_branch_context(db: AsyncSession, tenant_id: uuid.UUID, branch_id: uuid.UUID) -> Branch:
    """The branch a request runs in must exist, be active and belong to the caller's tenant."""
    branch = await db.get(Branch, branch_id)
    if branch is None:
        raise NotFound("Branch not found.")
    if branch.tenant_id != tenant_id:
        raise BranchMismatch()
    if not branch.is_active:
        raise InactiveBranch()
    return branch


async def resolve_navigation_for(
    db: AsyncSession,
    membership_id: uuid.UUID,
    branch_id: uuid.UUID,
) -> Navigation:
    """
    Effective navigation for one membership in one branch.

    Recomputed from stored assignments, grants and catalog on every call;
    nothing is cached between calls.
    """
    assignments = await rbac_crud.list_assignment_rows(db, membership_id)
    eligible = eligible_role_ids(assignments, branch_id)
    if not eligible:
        return EMPTY_NAVIGATION

    return resolve_navigation(
        assignments=assignments,
        grants=await rbac_crud.list_grants(db, eligible),
        catalog=await rbac_crud.load_catalog(db),
        branch_id=branch_id,
    )
