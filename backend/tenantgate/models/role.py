# backend/tenantgate/models/role.py

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tenantgate.db.base import Base


class RoleType(str, enum.Enum):
    SYSTEM = "SYSTEM"  # created at onboarding, undeletable
    CUSTOM = "CUSTOM"


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # SYSTEM | CUSTOM
    role_type: Mapped[str] = mapped_column(String(16), nullable=False, default=RoleType.CUSTOM.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_by_membership_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("memberships.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_system(self) -> bool:
        return self.role_type == RoleType.SYSTEM.value
