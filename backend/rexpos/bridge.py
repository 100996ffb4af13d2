# backend/rexpos/bridge.py
"""
Request bridge: the only interface between the desktop UI and the services.

Each operation is registered under a dot-separated name ("purchaseOrders.create")
and receives one plain payload dict. dispatch() always returns an envelope:

    {"success": True, "data": ...}                      # plus list metadata for paged ops
    {"success": False, "error": "...", "code": KIND}    # never raises

Handlers only shape input (defaults, filters) and hand results back; stock,
pricing and profit rules live in the services.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .time_utils import to_utc_z
from .validation import ConflictError, GuardError, NotFoundError, ValidationError, coerce_int


# Error kinds carried in the envelope "code" field
VALIDATION = "VALIDATION"
CONFLICT = "CONFLICT"
NOT_FOUND = "NOT_FOUND"
GUARD = "GUARD"
PERSISTENCE = "PERSISTENCE"
INTERNAL = "INTERNAL"

SENSITIVE_KEYS = {"password", "password_hash"}

# Errors raised on purpose by services; anything else is a bug and is logged
DOMAIN_ERRORS = (ValidationError, ConflictError, GuardError, NotFoundError)


def to_plain(value: Any) -> Any:
    """Models -> dicts, datetimes -> ISO-8601 Z; sensitive keys are dropped."""
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return to_plain(value.to_dict())
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items() if k not in SENSITIVE_KEYS}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def error_envelope(message: str, code: str, details: dict | None = None) -> dict:
    envelope = {"success": False, "error": message, "code": code}
    if details:
        envelope["details"] = to_plain(details)
    return envelope


# --- payload helpers used by handlers ------------------------------------------

def param(payload: dict, key: str, default=None):
    value = payload.get(key, default)
    return default if value == "" else value


def require_param(payload: dict, key: str):
    value = payload.get(key)
    if value in (None, ""):
        raise ValidationError(f"{key} is required")
    return value


def int_param(payload: dict, key: str, *, required: bool = False) -> int | None:
    value = require_param(payload, key) if required else param(payload, key)
    if value is None:
        return None
    return coerce_int(value, key)


def bool_param(payload: dict, key: str, default: bool = False) -> bool:
    value = payload.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def dict_param(payload: dict, key: str = "data") -> dict:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{key} must be an object")
    return value


class BridgeRegistry:
    """Named request/response handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, tuple[Callable[[dict], Any], bool]] = {}

    def register(self, name: str, *, paged: bool = False):
        """
        Decorator registering a handler under `name`.

        paged=True means the handler returns a {data, total, page, pageSize,
        totalPages} dict whose metadata is merged into the envelope.
        """
        def decorator(func):
            if name in self._handlers:
                raise ValueError(f"Bridge operation already registered: {name}")
            self._handlers[name] = (func, paged)
            return func
        return decorator

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def dispatch(self, name: str, payload: Any = None) -> dict:
        entry = self._handlers.get(name)
        if entry is None:
            return error_envelope(f"Unknown operation: {name}", NOT_FOUND)
        handler, paged = entry

        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return error_envelope("Payload must be an object", VALIDATION)

        try:
            result = handler(payload)
        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.warning("Integrity error in %s: %s", name, exc.orig)
            return error_envelope(str(exc.orig), PERSISTENCE)
        except DOMAIN_ERRORS as exc:
            db.session.rollback()
            return error_envelope(str(exc), exc.code, getattr(exc, "details", None))
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Bridge operation %s failed", name)
            return error_envelope(str(exc) or type(exc).__name__, INTERNAL)

        if paged:
            body = to_plain(result)
            return {"success": True, **body}
        return {"success": True, "data": to_plain(result)}


bridge = BridgeRegistry()
