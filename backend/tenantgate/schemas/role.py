# backend/tenantgate/schemas/role.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tenantgate.auth.permissions import PermissionSet


class PermissionFlags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    read: bool = False
    add: bool = False
    update: bool = False
    delete: bool = False

    def to_domain(self) -> PermissionSet:
        return PermissionSet(read=self.read, add=self.add, update=self.update, delete=self.delete)

    @classmethod
    def from_domain(cls, perms: PermissionSet) -> "PermissionFlags":
        return cls(**perms.as_dict())


def permissions_to_domain(payload: Optional[Dict[str, PermissionFlags]]) -> Optional[Dict[str, PermissionSet]]:
    if payload is None:
        return None
    return {key: flags.to_domain() for key, flags in payload.items()}


def _normalize_role_name(value: str) -> str:
    v = " ".join(value.strip().split())
    if not v:
        raise ValueError("Role name must not be blank.")
    return v


class RoleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    # menu key -> flags; replaces the whole permission set
    permissions: Dict[str, PermissionFlags] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _normalize_role_name(v)


class RoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None
    permissions: Optional[Dict[str, PermissionFlags]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _normalize_role_name(v)


class RoleOut(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    description: Optional[str] = None
    role_type: str
    is_active: bool
    assigned_count: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class RoleDetailOut(RoleOut):
    permissions: Dict[str, PermissionFlags] = Field(default_factory=dict)
