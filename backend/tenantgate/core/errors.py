# backend/tenantgate/core/errors.py
"""
Domain error taxonomy.

Every error carries a stable machine ``code``, a caller-facing ``message`` and
the HTTP status the API layer maps it to. Authentication and session errors
keep their internal reason in ``reason`` for logging only; the message they
expose is identical whatever the reason.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class TenantGateError(Exception):
    code: str = "error"
    message: str = "Request failed."
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update(self.extra)
        return detail


# ---------------------------------------------------------
# AuthenticationFailure
# ---------------------------------------------------------
class AuthenticationFailure(TenantGateError):
    code = "invalid_credentials"
    message = "Invalid email or password."
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, reason: str = "no_match") -> None:
        self.reason = reason
        super().__init__()


# ---------------------------------------------------------
# SessionInvalid
# ---------------------------------------------------------
class SessionInvalid(TenantGateError):
    code = "session_invalid"
    message = "Session expired or invalid. Please login again."
    status_code = status.HTTP_401_UNAUTHORIZED
    reason = "invalid"

    def __init__(self) -> None:
        super().__init__()


class SessionNotFound(SessionInvalid):
    reason = "not_found"


class SessionExpired(SessionInvalid):
    reason = "expired"


class SessionInactive(SessionInvalid):
    reason = "inactive"


# ---------------------------------------------------------
# AuthorizationFailure
# ---------------------------------------------------------
class AuthorizationFailure(TenantGateError):
    code = "forbidden"
    message = "You do not have access to this resource."
    status_code = status.HTTP_403_FORBIDDEN


class UnauthorizedSelection(AuthorizationFailure):
    code = "unauthorized_selection"
    message = "Unauthorized tenant selection."


class BranchMismatch(AuthorizationFailure):
    code = "branch_mismatch"
    message = "Branch does not belong to your organization."


class OnboardingIncomplete(AuthorizationFailure):
    code = "onboarding_incomplete"
    message = "Organization setup is not complete for this account."


class PermissionDenied(AuthorizationFailure):
    code = "rbac_forbidden"
    message = "You do not have permission to perform this action."


# ---------------------------------------------------------
# ValidationFailure (caller-correctable, specific)
# ---------------------------------------------------------
class ValidationFailure(TenantGateError):
    code = "validation_failed"
    # literal: the named constant changed across Starlette releases
    status_code = 422


class DuplicateAssignment(ValidationFailure):
    code = "duplicate_assignment"
    message = "Duplicate role assignment detected."


class UnknownRole(ValidationFailure):
    code = "unknown_role"
    message = "Some roles are invalid or inactive."


class UnknownBranch(ValidationFailure):
    code = "unknown_branch"
    message = "Some branches are invalid for this tenant."


class MixedScope(ValidationFailure):
    code = "mixed_scope"
    message = "Cannot combine tenant-wide roles with branch-specific roles."


class BranchConflict(ValidationFailure):
    code = "branch_conflict"
    message = "Cannot assign multiple roles to the same branch."


class VerificationRequired(ValidationFailure):
    code = "email_not_verified"
    message = "Please verify your email first."


class InvalidToken(ValidationFailure):
    code = "invalid_token"
    message = "Invalid or expired link."


class InactiveBranch(ValidationFailure):
    code = "branch_inactive"
    message = "Branch is inactive."


class PasswordTooLong(ValidationFailure):
    code = "password_too_long"
    message = "Password must be at most 72 bytes."


# ---------------------------------------------------------
# ConflictFailure
# ---------------------------------------------------------
class ConflictFailure(TenantGateError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class DuplicateRoleName(ConflictFailure):
    code = "duplicate_role_name"
    message = "A role with this name already exists for this tenant."


class SystemRoleProtected(ConflictFailure):
    code = "system_role_protected"
    message = "System roles are protected and cannot be deleted or deactivated."


class RoleInUse(ConflictFailure):
    code = "role_in_use"

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(
            f"Role is assigned to {count} membership(s). Remove all assignments first.",
            assigned_count=count,
        )


class AlreadyOnboarded(ConflictFailure):
    code = "already_onboarded"
    message = "Membership is already linked to an organization."


class EmailTaken(ConflictFailure):
    code = "email_taken"
    message = "Email already exists in this tenant."


class ResendThrottled(ConflictFailure):
    code = "verification_recently_sent"
    message = "Verification email was recently sent. Please wait before requesting again."
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


# ---------------------------------------------------------
# NotFound / Provisioning
# ---------------------------------------------------------
class NotFound(TenantGateError):
    code = "not_found"
    message = "Resource not found."
    status_code = status.HTTP_404_NOT_FOUND


class ProvisioningFailure(TenantGateError):
    code = "provisioning_failed"
    message = "Organization setup failed. Nothing was saved; please try again."
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
