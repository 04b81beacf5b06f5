# backend/tenantgate/schemas/menu.py
from __future__ import annotations

from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from tenantgate.auth.permissions import NavGroup, Navigation, NavItem
from tenantgate.schemas.role import PermissionFlags


class NavItemOut(BaseModel):
    key: str
    title: str
    url: Optional[str] = None
    icon: Optional[str] = None
    permissions: PermissionFlags
    children: List["NavItemOut"] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, item: NavItem) -> "NavItemOut":
        return cls(
            key=item.key,
            title=item.title,
            url=item.url,
            icon=item.icon,
            permissions=PermissionFlags.from_domain(item.permissions),
            children=[cls.from_domain(child) for child in item.children],
        )


class NavGroupOut(BaseModel):
    title: str
    items: List[NavItemOut]

    @classmethod
    def from_domain(cls, group: NavGroup) -> "NavGroupOut":
        return cls(title=group.title, items=[NavItemOut.from_domain(i) for i in group.items])


class NavigationOut(BaseModel):
    branch_id: UUID
    primary: List[NavGroupOut]
    secondary: List[NavGroupOut]
    permissions: Dict[str, PermissionFlags]

    @classmethod
    def from_domain(cls, branch_id: UUID, nav: Navigation) -> "NavigationOut":
        return cls(
            branch_id=branch_id,
            primary=[NavGroupOut.from_domain(g) for g in nav.primary],
            secondary=[NavGroupOut.from_domain(g) for g in nav.secondary],
            permissions={k: PermissionFlags.from_domain(p) for k, p in nav.grants.items()},
        )


class MenuCatalogOut(BaseModel):
    id: UUID
    key: str
    name: str
    path: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[UUID] = None
    menu_group: str
    sort_order: int
    is_main_menu: bool
    is_footer_menu: bool

    model_config = {"from_attributes": True}


NavItemOut.model_rebuild()
