# backend/tenantgate/core/menu_catalog.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.models.menu_node import MenuNode

MENU_DASHBOARD = "dashboard"
MENU_BRANCHES = "branches"
MENU_USERS = "users"
MENU_ROLES = "roles"
MENU_SETTINGS = "settings"
MENU_PROFILE = "settings.profile"
MENU_ORGANIZATION = "settings.organization"
MENU_HELP = "help"


@dataclass(frozen=True)
class MenuSeed:
    key: str
    name: str
    path: str
    icon: Optional[str]
    menu_group: str
    sort_order: int
    parent_key: Optional[str] = None
    is_main_menu: bool = True
    is_footer_menu: bool = False


DEFAULT_MENU_CATALOG: tuple[MenuSeed, ...] = (
    MenuSeed(MENU_DASHBOARD, "Dashboard", "/dashboard", "layout-dashboard", "Overview", 10),
    MenuSeed(MENU_BRANCHES, "Branches", "/branches", "building", "Organization", 20),
    MenuSeed(MENU_USERS, "Users", "/users", "users", "Access Control", 30),
    MenuSeed(MENU_ROLES, "Roles", "/roles", "shield", "Access Control", 40),
    MenuSeed(MENU_SETTINGS, "Settings", "/settings", "settings", "Settings", 50),
    MenuSeed(MENU_PROFILE, "Profile", "/settings/profile", "user", "Settings", 51, parent_key=MENU_SETTINGS),
    MenuSeed(
        MENU_ORGANIZATION,
        "Organization",
        "/settings/organization",
        "briefcase",
        "Settings",
        52,
        parent_key=MENU_SETTINGS,
    ),
    MenuSeed(MENU_HELP, "Help", "/help", "life-buoy", "Support", 90, is_main_menu=False, is_footer_menu=True),
)


async def seed_menu_catalog(db: AsyncSession, catalog: tuple[MenuSeed, ...] = DEFAULT_MENU_CATALOG) -> int:
    """
    Insert catalog entries that are not present yet (matched by key).
    Existing rows are left untouched. Returns the number of inserted rows.
    Caller commits.
    """
    existing = {
        m.key: m for m in (await db.execute(select(MenuNode))).scalars().all()
    }

    inserted = 0
    for seed in catalog:
        if seed.key in existing:
            continue
        parent = existing.get(seed.parent_key) if seed.parent_key else None
        node = MenuNode(
            key=seed.key,
            name=seed.name,
            path=seed.path,
            icon=seed.icon,
            parent_id=parent.id if parent else None,
            menu_group=seed.menu_group,
            sort_order=seed.sort_order,
            is_main_menu=seed.is_main_menu,
            is_footer_menu=seed.is_footer_menu,
        )
        db.add(node)
        await db.flush()
        existing[seed.key] = node
        inserted += 1

    return inserted
