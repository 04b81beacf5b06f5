# backend/tenantgate/models/role_permission.py

import uuid

from sqlalchemy import Boolean, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tenantgate.db.base import Base


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "menu_id", name="uq_role_permissions_role_menu"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("menu_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )

    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_add: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
