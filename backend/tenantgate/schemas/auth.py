# backend/tenantgate/schemas/auth.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator

from tenantgate.core.security import PASSWORD_MAX_BYTES, password_too_long

PASSWORD_MIN_LENGTH = 8


def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes.")
    return value


# Every password field shares the hashing limit.
Password = Annotated[str, AfterValidator(_check_password_bytes)]
NewPassword = Annotated[
    str,
    Field(min_length=PASSWORD_MIN_LENGTH, max_length=128),
    AfterValidator(_check_password_bytes),
]


def _normalize_name(value: str) -> str:
    v = " ".join(value.strip().split())
    if not v:
        raise ValueError("Name must not be blank.")
    return v


class SignupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: NewPassword

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _normalize_name(v)


class SignupResponse(BaseModel):
    status: str
    email: EmailStr
    membership_id: Optional[UUID] = None
    message: str


class EmailRequest(BaseModel):
    email: EmailStr


class AckResponse(BaseModel):
    status: str = "ok"
    message: str


class VerifyEmailResponse(BaseModel):
    status: str = "verified"
    membership_id: UUID
    email: EmailStr


class OnboardingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant_name: str = Field(min_length=2, max_length=200)
    hq_branch_name: str = Field(default="Head Office", min_length=1, max_length=200)
    plan_id: Optional[UUID] = None

    @field_validator("tenant_name", "hq_branch_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return _normalize_name(v)


class OnboardingResponse(BaseModel):
    tenant_id: UUID
    tenant_name: str
    branch_id: UUID
    membership_id: UUID
    email: EmailStr
    is_owner: bool = True
    subscription_plan_id: UUID
    token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: Password = Field(min_length=1, max_length=128)


class MembershipCandidateOut(BaseModel):
    membership_id: UUID
    tenant_id: Optional[UUID] = None
    tenant_name: Optional[str] = None
    is_owner: bool
    is_email_verified: bool
    has_password: bool
    password_matched: bool
    roles: List[str] = Field(default_factory=list)


class LoginResponse(BaseModel):
    email: EmailStr
    memberships: List[MembershipCandidateOut]
    global_token: str
    expires_at: datetime


class FederatedSignInRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id_token: str = Field(min_length=1, max_length=4096)


class FederatedSignupResponse(LoginResponse):
    membership_id: UUID
    is_new_user: bool


class TenantSelectionResponse(BaseModel):
    email: EmailStr
    memberships: List[MembershipCandidateOut]


class SelectTenantRequest(BaseModel):
    membership_id: UUID


class TenantSessionResponse(BaseModel):
    tenant_session_id: str
    membership_id: UUID
    tenant_id: UUID
    email: EmailStr
    expires_at: datetime
    token: str


class AssignedRoleOut(BaseModel):
    role_id: UUID
    role_name: str
    role_type: str
    branch_id: Optional[UUID] = None
    branch_name: Optional[str] = None

    model_config = {"from_attributes": True}


class BranchOut(BaseModel):
    id: UUID
    name: str
    is_hq: bool

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    tenant_session_id: str
    membership_id: UUID
    tenant_id: UUID
    tenant_name: str
    email: EmailStr
    name: Optional[str] = None
    is_owner: bool
    tenant_wide: bool
    roles: List[AssignedRoleOut]
    branches: List[BranchOut]


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=256)
    new_password: NewPassword


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_password: Password = Field(min_length=1, max_length=128)
    new_password: NewPassword
