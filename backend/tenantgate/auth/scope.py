from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Optional, Sequence, Union

from tenantgate.core.errors import (
    BranchConflict,
    DuplicateAssignment,
    MixedScope,
    UnknownBranch,
    UnknownRole,
)


@dataclass(frozen=True)
class TenantWide:
    """Assignment applies in every branch of the tenant."""

    def branch_id(self) -> Optional[uuid.UUID]:
        return None


@dataclass(frozen=True)
class BranchScope:
    branch: uuid.UUID

    def branch_id(self) -> Optional[uuid.UUID]:
        return self.branch


Scope = Union[TenantWide, BranchScope]

TENANT_WIDE = TenantWide()


def scope_from_branch(branch_id: Optional[uuid.UUID]) -> Scope:
    return TENANT_WIDE if branch_id is None else BranchScope(branch_id)


@dataclass(frozen=True)
class AssignmentRequest:
    role_id: uuid.UUID
    scope: Scope = TENANT_WIDE


# ---------------------------------------------------------
# Validated plans
# ---------------------------------------------------------
# A valid assignment set is either exactly one tenant-wide role or a
# branch -> role mapping, so mixing scopes is unrepresentable once validated.
@dataclass(frozen=True)
class TenantWidePlan:
    role_id: uuid.UUID

    def rows(self) -> list[tuple[uuid.UUID, Optional[uuid.UUID]]]:
        return [(self.role_id, None)]


@dataclass(frozen=True)
class BranchPlan:
    # (branch_id, role_id) in request order
    roles_by_branch: tuple[tuple[uuid.UUID, uuid.UUID], ...] = ()

    def rows(self) -> list[tuple[uuid.UUID, Optional[uuid.UUID]]]:
        return [(role_id, branch_id) for branch_id, role_id in self.roles_by_branch]


AssignmentPlan = Union[TenantWidePlan, BranchPlan]


def validate_assignments(
    requests: Sequence[AssignmentRequest],
    *,
    active_role_ids: AbstractSet[uuid.UUID],
    tenant_branch_ids: AbstractSet[uuid.UUID],
) -> AssignmentPlan:
    """
    Check an assignment set against the tenant's roles and branches.

    Rules run in a fixed order and the first violation is raised:
      a) (role, branch) pairs are unique
      b) every role exists in the tenant and is active
      c) every branch exists in the tenant
      d) tenant-wide and branch entries are not mixed
      e) no branch (tenant-wide bucket included) receives two roles
    """
    seen: set[tuple[uuid.UUID, Scope]] = set()
    for req in requests:
        key = (req.role_id, req.scope)
        if key in seen:
            raise DuplicateAssignment(role_id=str(req.role_id), branch_id=_branch_str(req.scope))
        seen.add(key)

    for req in requests:
        if req.role_id not in active_role_ids:
            raise UnknownRole(role_id=str(req.role_id))

    for req in requests:
        branch_id = req.scope.branch_id()
        if branch_id is not None and branch_id not in tenant_branch_ids:
            raise UnknownBranch(branch_id=str(branch_id))

    has_tenant_wide = any(isinstance(r.scope, TenantWide) for r in requests)
    has_branch = any(isinstance(r.scope, BranchScope) for r in requests)
    if has_tenant_wide and has_branch:
        raise MixedScope()

    per_bucket: dict[Scope, uuid.UUID] = {}
    for req in requests:
        if req.scope in per_bucket:
            raise BranchConflict(branch_id=_branch_str(req.scope))
        per_bucket[req.scope] = req.role_id

    if has_tenant_wide:
        return TenantWidePlan(role_id=per_bucket[TENANT_WIDE])

    return BranchPlan(
        roles_by_branch=tuple((req.scope.branch_id(), req.role_id) for req in requests)  # type: ignore[misc]
    )


def referenced_ids(requests: Iterable[AssignmentRequest]) -> tuple[set[uuid.UUID], set[uuid.UUID]]:
    role_ids: set[uuid.UUID] = set()
    branch_ids: set[uuid.UUID] = set()
    for req in requests:
        role_ids.add(req.role_id)
        branch_id = req.scope.branch_id()
        if branch_id is not None:
            branch_ids.add(branch_id)
    return role_ids, branch_ids


def _branch_str(scope: Scope) -> Optional[str]:
    branch_id = scope.branch_id()
    return str(branch_id) if branch_id is not None else None
