from __future__ import annotations

import json
import logging
from typing import Any

from tenantgate.core.config import settings

logger = logging.getLogger("tenantgate")

_REDACTED_KEYS = {"password", "token", "credential", "password_hash", "secret"}


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize(v) for v in value]
    return str(value)


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger("tenantgate")
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(handler)


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """One JSON line per security-relevant event. Secret-looking keys are dropped."""
    payload = {"event": event}
    for key, value in fields.items():
        if key in _REDACTED_KEYS:
            continue
        payload[key] = _normalize(value)
    logger.log(level, json.dumps(payload, sort_keys=True))
