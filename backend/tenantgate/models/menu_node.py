# backend/tenantgate/models/menu_node.py

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tenantgate.db.base import Base


class MenuNode(Base):
    """Static navigation catalog entry. Not mutated by request handling."""

    __tablename__ = "menu_nodes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # programmatic key, e.g. "users", "roles"
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("menu_nodes.id", ondelete="SET NULL"),
        nullable=True,
    )

    menu_group: Mapped[str] = mapped_column(String(100), nullable=False, default="General")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_main_menu: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_footer_menu: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
