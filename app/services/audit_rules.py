"""
Pure classification rules that turn HTTP request metadata into audit fields.

Given (method, path, route params, outcome) they decide the action, the
resource type, the resource id, and the audit status. Nothing here touches
the request object or the database.
"""

from __future__ import annotations

from typing import Any, Mapping

AUTH_ACTIONS = (
    ("/auth/login", "login"),
    ("/auth/logout", "logout"),
    ("/auth/refresh", "refresh"),
    ("/auth/forgot-password", "forgot_password"),
    ("/auth/reset-password", "reset_password"),
)

METHOD_ACTIONS = {
    "GET": "read",
    "POST": "write",
    "PUT": "write",
    "PATCH": "write",
    "DELETE": "delete",
}

RESOURCE_TYPES = {
    "patients": "patient",
    "providers": "provider",
    "instructions": "instruction",
    "compliance": "compliance",
    "notifications": "notification",
    "users": "user",
    "admin": "admin",
    "auth": "auth",
}

# Checked in order; snake_case twins cover FastAPI-style path parameters.
RESOURCE_ID_PARAMS = (
    "id",
    "userId",
    "user_id",
    "patientId",
    "patient_id",
    "instructionId",
    "instruction_id",
    "recordId",
    "record_id",
    "notificationId",
    "notification_id",
)

ERROR_MESSAGE_LIMIT = 500

STATUS_SUCCESS = "success"
STATUS_DENIED = "denied"
STATUS_FAILURE = "failure"


def infer_action(method: str, path: str) -> str:
    lowered = path.lower()
    for fragment, action in AUTH_ACTIONS:
        if fragment in lowered:
            return action
    return METHOD_ACTIONS.get(method.upper(), method.lower())


def infer_resource_type(path: str) -> str:
    parts = [p for p in path.lstrip("/").split("?")[0].split("/") if p]
    idx = 2 if parts[:2] == ["api", "v1"] else 0
    first = parts[idx].lower() if len(parts) > idx else ""
    return RESOURCE_TYPES.get(first, first or "unknown")


def infer_resource_id(params: Mapping[str, Any] | None) -> str | None:
    if not params:
        return None
    for key in RESOURCE_ID_PARAMS:
        value = params.get(key)
        if isinstance(value, str) and value.strip():
            return value
    for value in params.values():
        if isinstance(value, str) and value.strip():
            return value
    return None


def classify_status(status_code: int) -> str:
    if 200 <= status_code < 400:
        return STATUS_SUCCESS
    if status_code in (401, 403):
        return STATUS_DENIED
    return STATUS_FAILURE


def error_status_code(exc: BaseException) -> int | None:
    status_code = getattr(exc, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def classify_error(exc: BaseException) -> str:
    if error_status_code(exc) in (401, 403):
        return STATUS_DENIED
    return STATUS_FAILURE


def error_message(exc: BaseException) -> str:
    detail = getattr(exc, "detail", None)
    return str(detail or exc)[:ERROR_MESSAGE_LIMIT]
