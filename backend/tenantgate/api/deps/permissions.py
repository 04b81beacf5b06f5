# backend/tenantgate/api/deps/permissions.py
from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.api.deps.auth import get_auth_context
from tenantgate.auth.context import AuthContext
from tenantgate.auth.permissions import Operation
from tenantgate.core.errors import PermissionDenied, ValidationFailure
from tenantgate.core.observability import log_event
from tenantgate.core.permission_resolver import resolve_branch_context, resolve_navigation_for
from tenantgate.db.session import get_db
from tenantgate.models.branch import Branch


def parse_branch_header(value: Optional[str]) -> uuid.UUID:
    if not value:
        raise ValidationFailure("X-Branch-Id header is required.", field="X-Branch-Id")
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        raise ValidationFailure("X-Branch-Id must be a valid UUID.", field="X-Branch-Id")


async def get_current_branch(
    x_branch_id: Optional[str] = Header(default=None, alias="X-Branch-Id"),
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> Branch:
    """Branch the request runs in; must be active and belong to the session's tenant."""
    return await resolve_branch_context(db, ctx.tenant_id, parse_branch_header(x_branch_id))


def require_permission(menu_key: str, operation: Operation | str) -> Callable:
    """
    Enforce the merged grant for menu_key in the current branch:
      - tenant-wide roles apply everywhere, branch roles only in their branch
      - tenant owners always pass
    """
    op = Operation(operation)

    async def _checker(
        ctx: AuthContext = Depends(get_auth_context),
        branch: Branch = Depends(get_current_branch),
        db: AsyncSession = Depends(get_db),
    ) -> AuthContext:
        if ctx.is_owner:
            return ctx

        nav = await resolve_navigation_for(db, ctx.membership_id, branch.id)
        if not nav.permissions_for(menu_key).allows(op):
            log_event(
                "permission_denied",
                level=logging.WARNING,
                membership_id=ctx.membership_id,
                branch_id=branch.id,
                menu=menu_key,
                operation=op.value,
            )
            raise PermissionDenied(required={"menu": menu_key, "operation": op.value})

        return ctx

    return _checker
