from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from functools import reduce
from typing import Iterable, Mapping, Optional, Sequence


class Operation(str, enum.Enum):
    READ = "read"
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PermissionSet:
    read: bool = False
    add: bool = False
    update: bool = False
    delete: bool = False

    def __or__(self, other: "PermissionSet") -> "PermissionSet":
        return PermissionSet(
            read=self.read or other.read,
            add=self.add or other.add,
            update=self.update or other.update,
            delete=self.delete or other.delete,
        )

    def allows(self, operation: Operation | str) -> bool:
        return bool(getattr(self, Operation(operation).value))

    @property
    def enabled(self) -> bool:
        return self.read or self.add or self.update or self.delete

    def as_dict(self) -> dict[str, bool]:
        return {"read": self.read, "add": self.add, "update": self.update, "delete": self.delete}


NO_ACCESS = PermissionSet()
FULL_ACCESS = PermissionSet(read=True, add=True, update=True, delete=True)


# ---------------------------------------------------------
# Inputs (storage-independent projections)
# ---------------------------------------------------------
@dataclass(frozen=True)
class AssignmentRow:
    role_id: uuid.UUID
    branch_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class Grant:
    role_id: uuid.UUID
    menu_id: uuid.UUID
    permissions: PermissionSet


@dataclass(frozen=True)
class CatalogEntry:
    id: uuid.UUID
    key: str
    name: str
    path: Optional[str]
    icon: Optional[str]
    parent_id: Optional[uuid.UUID]
    menu_group: str
    sort_order: int
    is_main_menu: bool
    is_footer_menu: bool


# ---------------------------------------------------------
# Outputs
# ---------------------------------------------------------
@dataclass(frozen=True)
class NavItem:
    key: str
    title: str
    url: Optional[str]
    icon: Optional[str]
    permissions: PermissionSet
    children: tuple["NavItem", ...] = ()


@dataclass(frozen=True)
class NavGroup:
    title: str
    items: tuple[NavItem, ...]


@dataclass(frozen=True)
class Navigation:
    primary: tuple[NavGroup, ...] = ()
    secondary: tuple[NavGroup, ...] = ()
    # menu key -> merged grant for every readable node
    grants: Mapping[str, PermissionSet] = field(default_factory=dict)

    def permissions_for(self, menu_key: str) -> PermissionSet:
        return self.grants.get(menu_key, NO_ACCESS)


EMPTY_NAVIGATION = Navigation()


# ---------------------------------------------------------
# Resolution steps
# ---------------------------------------------------------
def eligible_role_ids(
    assignments: Iterable[AssignmentRow],
    branch_id: Optional[uuid.UUID],
) -> frozenset[uuid.UUID]:
    """Tenant-wide assignments always apply; branch assignments only in their own branch."""
    return frozenset(
        a.role_id for a in assignments if a.branch_id is None or a.branch_id == branch_id
    )


def merge_grants(grants: Iterable[Grant]) -> dict[uuid.UUID, PermissionSet]:
    """Union of every grant per menu node. Order of grants never changes the result."""

    def _fold(acc: dict[uuid.UUID, PermissionSet], grant: Grant) -> dict[uuid.UUID, PermissionSet]:
        acc[grant.menu_id] = acc.get(grant.menu_id, NO_ACCESS) | grant.permissions
        return acc

    return reduce(_fold, grants, {})


def build_navigation(
    catalog: Mapping[uuid.UUID, CatalogEntry],
    merged: Mapping[uuid.UUID, PermissionSet],
) -> Navigation:
    # read is the visibility gate; dangling menu references are skipped
    visible = sorted(
        (catalog[menu_id] for menu_id, perms in merged.items() if perms.read and menu_id in catalog),
        key=lambda entry: (entry.sort_order, entry.key),
    )
    if not visible:
        return EMPTY_NAVIGATION

    visible_ids = {entry.id for entry in visible}
    children: dict[uuid.UUID, list[CatalogEntry]] = {}
    top_level: list[CatalogEntry] = []
    for entry in visible:
        if entry.parent_id is not None and entry.parent_id in visible_ids:
            children.setdefault(entry.parent_id, []).append(entry)
        else:
            top_level.append(entry)

    def _node(entry: CatalogEntry) -> NavItem:
        return NavItem(
            key=entry.key,
            title=entry.name,
            url=entry.path,
            icon=entry.icon,
            permissions=merged[entry.id],
            children=tuple(_node(child) for child in children.get(entry.id, ())),
        )

    primary: dict[str, list[NavItem]] = {}
    secondary: dict[str, list[NavItem]] = {}
    for entry in top_level:
        if entry.is_main_menu:
            primary.setdefault(entry.menu_group, []).append(_node(entry))
        if entry.is_footer_menu:
            secondary.setdefault(entry.menu_group, []).append(_node(entry))

    return Navigation(
        primary=tuple(NavGroup(title=t, items=tuple(items)) for t, items in primary.items()),
        secondary=tuple(NavGroup(title=t, items=tuple(items)) for t, items in secondary.items()),
        grants={entry.key: merged[entry.id] for entry in visible},
    )


def resolve_navigation(
    *,
    assignments: Sequence[AssignmentRow],
    grants: Iterable[Grant],
    catalog: Mapping[uuid.UUID, CatalogEntry],
    branch_id: Optional[uuid.UUID],
) -> Navigation:
    """
    Pure pipeline: eligible roles for the branch -> OR-merge of their grants
    -> read filter -> tree -> primary/secondary groups.
    """
    eligible = eligible_role_ids(assignments, branch_id)
    if not eligible:
        return EMPTY_NAVIGATION
    merged = merge_grants(g for g in grants if g.role_id in eligible)
    return build_navigation(catalog, merged)
