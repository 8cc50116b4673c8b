"""Tests for the request audit interceptor, driven through a small FastAPI app."""

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from app.api.audit import AuditedRoute, AuditInterceptor
from app.services.auth import Actor

from tests.conftest import MemoryAuditStore

ACTOR = Actor(id="u-1", email="dana.lee@example.com", first_name="Dana", last_name="Lee", role="provider")


def optional_actor(request: Request):
    """Stand-in for real authentication: the x-test-user header marks the caller as signed in."""
    if request.headers.get("x-test-user"):
        request.state.actor = ACTOR
        return ACTOR
    return None


def build_app(store):
    interceptor = AuditInterceptor(store)

    @asynccontextmanager
    async def lifespan(app):
        yield
        await interceptor.drain()

    router = APIRouter(route_class=AuditedRoute)

    @router.post("/api/v1/patients/{patient_id}", status_code=201)
    def write_patient(patient_id: str, payload: dict = Body(...), actor=Depends(optional_actor)):
        return {"id": patient_id}

    @router.get("/api/v1/patients")
    def search_patients(actor=Depends(optional_actor)):
        return []

    @router.get("/api/v1/patients/{patient_id}/notes")
    def forbidden_notes(patient_id: str, actor=Depends(optional_actor)):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    @router.delete("/api/v1/notifications/{notification_id}")
    def broken_delete(notification_id: str, actor=Depends(optional_actor)):
        raise RuntimeError("storage exploded " + "x" * 1000)

    app = FastAPI(lifespan=lifespan)
    app.state.audit_interceptor = interceptor
    app.include_router(router)
    return app


def test_get_query_is_scrubbed_and_body_omitted():
    store = MemoryAuditStore()
    with TestClient(build_app(store)) as client:
        response = client.get(
            "/api/v1/patients",
            params={"password": "x", "other": "y"},
            headers={"x-test-user": "1", "user-agent": "pytest-agent"},
        )
        assert response.status_code == 200

    [entry] = store.entries
    assert entry.action == "read"
    assert entry.resource_type == "patient"
    assert entry.resource_id is None
    assert entry.status == "success"
    assert entry.details["query"] == {"password": "[redacted]", "other": "y"}
    assert "body" not in entry.details
    assert entry.details["method"] == "GET"
    assert entry.details["path"] == "/api/v1/patients"
    assert entry.details["status_code"] == 200
    assert entry.user_agent == "pytest-agent"
    assert entry.ip_address == "testclient"


def test_post_is_classified_as_write_with_resource_id():
    store = MemoryAuditStore()
    with TestClient(build_app(store)) as client:
        response = client.post(
            "/api/v1/patients/42",
            json={"note": "follow up", "otpCode": "123456", "nested": {"apiToken": "t"}},
            headers={"x-test-user": "1"},
        )
        assert response.status_code == 201

    [entry] = store.entries
    assert entry.action == "write"
    assert entry.resource_type == "patient"
    assert entry.resource_id == "42"
    assert entry.status == "success"
    assert entry.details["status_code"] == 201
    assert entry.details["body"] == {
        "note": "follow up",
        "otpCode": "[redacted]",
        "nested": {"apiToken": "[redacted]"},
    }
    assert entry.user_id == "u-1"
    assert entry.user_email == "dana.lee@example.com"
    assert entry.user_name == "Dana Lee"


def test_unauthenticated_requests_are_not_audited():
    store = MemoryAuditStore()
    with TestClient(build_app(store)) as client:
        assert client.get("/api/v1/patients").status_code == 200
        assert client.post("/api/v1/patients/42", json={}).status_code == 201
        assert client.get("/api/v1/patients/42/notes").status_code == 403

    assert store.entries == []


def test_forbidden_is_recorded_as_denied():
    store = MemoryAuditStore()
    with TestClient(build_app(store)) as client:
        response = client.get("/api/v1/patients/7/notes", headers={"x-test-user": "1"})
        assert response.status_code == 403

    [entry] = store.entries
    assert entry.status == "denied"
    assert entry.resource_id == "7"
    assert entry.details["status_code"] == 403
    assert entry.details["error"] == "Insufficient permissions"


def test_unhandled_error_is_recorded_as_failure_with_truncated_message():
    store = MemoryAuditStore()
    with TestClient(build_app(store), raise_server_exceptions=False) as client:
        response = client.delete("/api/v1/notifications/n-5", headers={"x-test-user": "1"})
        assert response.status_code == 500

    [entry] = store.entries
    assert entry.action == "delete"
    assert entry.resource_type == "notification"
    assert entry.resource_id == "n-5"
    assert entry.status == "failure"
    assert entry.details["status_code"] == 500
    assert entry.details["error"].startswith("storage exploded")
    assert len(entry.details["error"]) == 500
    assert entry.details["body"] is None


def test_store_failure_is_logged_and_never_reaches_the_client(caplog):
    class BrokenStore:
        def write(self, entry):
            raise RuntimeError("database unavailable")

    with caplog.at_level(logging.ERROR, logger="app.api.audit"):
        with TestClient(build_app(BrokenStore())) as client:
            response = client.post("/api/v1/patients/42", json={}, headers={"x-test-user": "1"})
            assert response.status_code == 201
            assert response.json() == {"id": "42"}

    assert "Failed to write audit log" in caplog.text


def test_response_does_not_wait_for_the_audit_write():
    release = threading.Event()

    class SlowStore(MemoryAuditStore):
        def write(self, entry):
            release.wait(timeout=10)
            super().write(entry)

    store = SlowStore()
    app = build_app(store)
    with TestClient(app) as client:
        response = client.get("/api/v1/patients", headers={"x-test-user": "1"})
        assert response.status_code == 200
        assert store.entries == []
        assert app.state.audit_interceptor.pending == 1
        release.set()

    assert len(store.entries) == 1
    assert app.state.audit_interceptor.pending == 0


def test_routes_pass_through_without_an_interceptor():
    app = build_app(MemoryAuditStore())
    del app.state.audit_interceptor
    with TestClient(app) as client:
        response = client.get("/api/v1/patients", headers={"x-test-user": "1"})
        assert response.status_code == 200
