# backend/tenantgate/api/v1/menus.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.api.deps.auth import get_auth_context
from tenantgate.api.deps.permissions import get_current_branch
from tenantgate.auth.context import AuthContext
from tenantgate.core.permission_resolver import resolve_navigation_for
from tenantgate.db.session import get_db
from tenantgate.models.branch import Branch
from tenantgate.models.menu_node import MenuNode
from tenantgate.schemas.menu import MenuCatalogOut, NavigationOut

router = APIRouter(prefix="/menus", tags=["menus"])


@router.get("/effective", response_model=NavigationOut)
async def effective_menu(
    ctx: AuthContext = Depends(get_auth_context),
    branch: Branch = Depends(get_current_branch),
    db: AsyncSession = Depends(get_db),
):
    """Navigation for the caller in the branch given by X-Branch-Id."""
    nav = await resolve_navigation_for(db, ctx.membership_id, branch.id)
    return NavigationOut.from_domain(branch.id, nav)


@router.get("/catalog", response_model=List[MenuCatalogOut])
async def menu_catalog(
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    rows = (await db.execute(select(MenuNode).order_by(MenuNode.sort_order, MenuNode.key))).scalars().all()
    return [MenuCatalogOut.model_validate(m) for m in rows]
