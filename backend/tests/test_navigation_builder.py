# tests/test_navigation_builder.py
from __future__ import annotations

import uuid

from tenantgate.auth.permissions import (
    EMPTY_NAVIGATION,
    FULL_ACCESS,
    NO_ACCESS,
    AssignmentRow,
    CatalogEntry,
    Grant,
    Operation,
    PermissionSet,
    build_navigation,
    eligible_role_ids,
    merge_grants,
    resolve_navigation,
)


def entry(key: str, sort_order: int, *, group: str = "Main", parent=None, main=True, footer=False) -> CatalogEntry:
    return CatalogEntry(
        id=uuid.uuid4(),
        key=key,
        name=key.title(),
        path=f"/{key}",
        icon=None,
        parent_id=parent.id if parent else None,
        menu_group=group,
        sort_order=sort_order,
        is_main_menu=main,
        is_footer_menu=footer,
    )


DASH = entry("dashboard", 10, group="Overview")
USERS = entry("users", 30, group="Access")
ROLES = entry("roles", 40, group="Access")
SETTINGS = entry("settings", 50, group="Settings")
PROFILE = entry("profile", 51, group="Settings", parent=SETTINGS)
HELP = entry("help", 90, group="Support", main=False, footer=True)
CATALOG = {e.id: e for e in (DASH, USERS, ROLES, SETTINGS, PROFILE, HELP)}

READ = PermissionSet(read=True)


def test_permission_set_union():
    a = PermissionSet(read=True, update=False)
    b = PermissionSet(read=True, update=True)
    assert a | b == PermissionSet(read=True, update=True)
    assert (a | NO_ACCESS) == a
    assert (a | FULL_ACCESS) == FULL_ACCESS
    assert (a | b).allows(Operation.UPDATE)
    assert (a | b).allows("read")
    assert not (a | b).allows(Operation.DELETE)


def test_merge_is_union_and_order_independent():
    ra, rb = uuid.uuid4(), uuid.uuid4()
    grants = [
        Grant(ra, USERS.id, PermissionSet(read=True, update=False)),
        Grant(rb, USERS.id, PermissionSet(read=True, update=True)),
        Grant(rb, ROLES.id, PermissionSet(add=True)),
    ]
    merged = merge_grants(grants)
    assert merged[USERS.id] == PermissionSet(read=True, update=True)
    assert merged[ROLES.id] == PermissionSet(add=True)
    assert merge_grants(reversed(grants)) == merged


def test_eligibility_tenant_wide_and_matching_branch_only():
    r1, r2, r3 = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    b1, b2 = uuid.uuid4(), uuid.uuid4()
    rows = [AssignmentRow(r1, None), AssignmentRow(r2, b1), AssignmentRow(r3, b2)]
    assert eligible_role_ids(rows, b1) == {r1, r2}
    assert eligible_role_ids(rows, uuid.uuid4()) == {r1}


def test_unreadable_nodes_are_hidden():
    nav = build_navigation(CATALOG, {USERS.id: PermissionSet(add=True, update=True), DASH.id: READ})
    keys = [item.key for group in nav.primary for item in group.items]
    assert keys == ["dashboard"]
    assert nav.permissions_for("users") == NO_ACCESS


def test_tree_groups_and_surfaces():
    merged = {e.id: READ for e in CATALOG.values()}
    nav = build_navigation(CATALOG, merged)

    assert [g.title for g in nav.primary] == ["Overview", "Access", "Settings"]
    access = nav.primary[1]
    assert [i.key for i in access.items] == ["users", "roles"]

    settings_item = nav.primary[2].items[0]
    assert settings_item.key == "settings"
    assert [c.key for c in settings_item.children] == ["profile"]

    assert [g.title for g in nav.secondary] == ["Support"]
    assert nav.secondary[0].items[0].key == "help"


def test_child_of_hidden_parent_becomes_top_level():
    nav = build_navigation(CATALOG, {PROFILE.id: READ})
    assert len(nav.primary) == 1
    assert nav.primary[0].title == "Settings"
    assert [i.key for i in nav.primary[0].items] == ["profile"]
    assert nav.primary[0].items[0].children == ()


def test_dangling_menu_reference_is_skipped():
    nav = build_navigation(CATALOG, {uuid.uuid4(): FULL_ACCESS, DASH.id: READ})
    assert [i.key for g in nav.primary for i in g.items] == ["dashboard"]
    assert set(nav.grants) == {"dashboard"}


def test_no_eligible_roles_is_empty_not_error():
    nav = resolve_navigation(
        assignments=[AssignmentRow(uuid.uuid4(), uuid.uuid4())],
        grants=[],
        catalog=CATALOG,
        branch_id=uuid.uuid4(),
    )
    assert nav == EMPTY_NAVIGATION
    assert nav.primary == () and nav.secondary == ()


def test_resolution_is_idempotent():
    role = uuid.uuid4()
    kwargs = dict(
        assignments=[AssignmentRow(role, None)],
        grants=[Grant(role, e.id, READ) for e in CATALOG.values()],
        catalog=CATALOG,
        branch_id=uuid.uuid4(),
    )
    assert resolve_navigation(**kwargs) == resolve_navigation(**kwargs)


def test_grants_of_ineligible_roles_are_ignored():
    branch_role, other_role = uuid.uuid4(), uuid.uuid4()
    b1, b2 = uuid.uuid4(), uuid.uuid4()
    nav = resolve_navigation(
        assignments=[AssignmentRow(branch_role, b1), AssignmentRow(other_role, b2)],
        grants=[Grant(branch_role, DASH.id, READ), Grant(other_role, USERS.id, FULL_ACCESS)],
        catalog=CATALOG,
        branch_id=b1,
    )
    assert set(nav.grants) == {"dashboard"}
