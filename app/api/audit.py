"""
Automatic audit trail for API requests.

Every router in the app uses ``AuditedRoute`` as its route class. After the
endpoint has produced a response (or raised), the interceptor classifies the
request, scrubs credentials out of the query/body and hands one AuditEntry to
the audit store in a detached task. Requests without an authenticated actor
are not audited.

Audit writes are best-effort: the client never waits for them, failures are
logged and dropped, and nothing is retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from starlette.concurrency import run_in_threadpool

from app.services.audit import AuditEntry
from app.services.audit_rules import (
    classify_error,
    classify_status,
    error_message,
    error_status_code,
    infer_action,
    infer_resource_id,
    infer_resource_type,
)
from app.services.auth import Actor, get_request_actor
from app.services.redaction import scrub

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


class AuditStore(Protocol):
    def write(self, entry: AuditEntry) -> None: ...


def _query_dict(request: Request) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        out[key] = values[0] if len(values) == 1 else values
    return out


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


class AuditInterceptor:
    def __init__(self, store: AuditStore):
        self._store = store
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def intercept(self, request: Request, call_next: CallNext) -> Response:
        try:
            response = await call_next(request)
        except Exception as exc:
            actor = get_request_actor(request)
            if actor is not None:
                status_code = error_status_code(exc)
                if status_code is None:
                    status_code = 422 if isinstance(exc, RequestValidationError) else 500
                await self._record(
                    request, actor, classify_error(exc), status_code, error_message(exc)
                )
            raise
        actor = get_request_actor(request)
        if actor is not None:
            await self._record(request, actor, classify_status(response.status_code), response.status_code)
        return response

    async def drain(self) -> None:
        """Wait for in-flight audit writes (application shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _record(
        self,
        request: Request,
        actor: Actor,
        status: str,
        status_code: int,
        error: str | None = None,
    ) -> None:
        try:
            entry = await self._build_entry(request, actor, status, status_code, error)
        except Exception:
            logger.exception("Failed to build audit entry for %s %s", request.method, request.url.path)
            return
        task = asyncio.get_running_loop().create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _build_entry(
        self,
        request: Request,
        actor: Actor,
        status: str,
        status_code: int,
        error: str | None,
    ) -> AuditEntry:
        method = request.method.upper()
        path = request.url.path
        details: dict[str, Any] = {
            "method": method,
            "path": path,
            "query": scrub(_query_dict(request)),
            "status_code": status_code,
        }
        if method != "GET":
            details["body"] = scrub(await _json_body(request))
        if error:
            details["error"] = error

        return AuditEntry(
            user_id=actor.id,
            user_email=actor.email,
            user_name=actor.display_name,
            action=infer_action(method, path),
            resource_type=infer_resource_type(path),
            resource_id=infer_resource_id(request.path_params),
            ip_address=request.client.host if request.client else "unknown",
            user_agent=request.headers.get("user-agent", ""),
            status=status,
            details=details,
        )

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await run_in_threadpool(self._store.write, entry)
        except Exception:
            logger.exception(
                "Failed to write audit log: %s %s/%s", entry.action, entry.resource_type, entry.resource_id
            )


class AuditedRoute(APIRoute):
    """Route class that sends every request through the app's AuditInterceptor."""

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        handler = super().get_route_handler()

        async def audited_handler(request: Request) -> Response:
            interceptor = getattr(request.app.state, "audit_interceptor", None)
            if interceptor is None:
                return await handler(request)
            return await interceptor.intercept(request, handler)

        return audited_handler
