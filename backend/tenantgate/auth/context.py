from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class AuthContext:
    """Tenant-session identity, passed explicitly to every call that needs it."""

    session_id: str
    membership_id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    is_owner: bool = False


@dataclass(frozen=True)
class GlobalContext:
    """Phase-1 identity: only allowed to list and select memberships."""

    global_session_id: str
    email: str
    membership_ids: tuple[str, ...] = ()
