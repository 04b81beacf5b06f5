# backend/tenantgate/services/email.py
#
# Outbound email is a collaborator. This module only defines the messages the
# identity flows emit and a default sender that logs them.

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from tenantgate.core.config import settings

logger = logging.getLogger("tenantgate.email")


class EmailKind(str, enum.Enum):
    VERIFY_EMAIL = "verify_email"
    PASSWORD_RESET = "password_reset"
    PASSWORD_CHANGED = "password_changed"
    WELCOME = "welcome"
    FEDERATED_SIGNUP = "federated_signup"


@dataclass(frozen=True)
class EmailMessage:
    kind: EmailKind
    to: str
    name: str | None = None
    link: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class LoggingEmailSender:
    async def send(self, message: EmailMessage) -> None:
        # link carries a one-time token; never log it
        logger.info("email queued kind=%s to=%s", message.kind.value, message.to)


_default_sender: EmailSender = LoggingEmailSender()


def get_email_sender() -> EmailSender:
    """FastAPI dependency; tests override it with an in-memory outbox."""
    return _default_sender


def verification_link(token: str) -> str:
    return f"{settings.FRONTEND_BASE_URL.rstrip('/')}/verify-email/{token}"


def password_reset_link(token: str) -> str:
    return f"{settings.FRONTEND_BASE_URL.rstrip('/')}/reset-password/{token}"
