# backend/tenantgate/schemas/member.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tenantgate.auth.scope import AssignmentRequest, scope_from_branch
from tenantgate.schemas.auth import AssignedRoleOut, NewPassword


class AssignmentIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role_id: UUID
    # null = tenant-wide
    branch_id: Optional[UUID] = None

    def to_domain(self) -> AssignmentRequest:
        return AssignmentRequest(role_id=self.role_id, scope=scope_from_branch(self.branch_id))


def assignments_to_domain(items: List[AssignmentIn]) -> list[AssignmentRequest]:
    return [item.to_domain() for item in items]


class MemberCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: NewPassword
    roles: List[AssignmentIn] = Field(default_factory=list)


class MemberRolesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    roles: List[AssignmentIn]


class MemberOut(BaseModel):
    id: UUID
    tenant_id: UUID
    email: EmailStr
    name: Optional[str] = None
    is_owner: bool
    is_email_verified: bool
    created_at: datetime
    roles: List[AssignedRoleOut] = Field(default_factory=list)
