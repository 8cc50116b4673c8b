"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------

class PatientCreate(BaseModel):
    first_name: str
    last_name: str
    date_of_birth: str | None = None
    gender: str | None = None
    medical_record_number: str | None = None
    phone: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip_code: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_relationship: str | None = None
    emergency_contact_phone: str | None = None


class PatientUpdate(BaseModel):
    """Partial update – only fields present in the payload are changed."""
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    medical_record_number: str | None = None
    phone: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip_code: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_relationship: str | None = None
    emergency_contact_phone: str | None = None


class PatientResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    date_of_birth: str | None = None
    gender: str | None = None
    medical_record_number: str | None = None
    phone: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip_code: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_relationship: str | None = None
    emergency_contact_phone: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Audit log viewer
# ---------------------------------------------------------------------------

class AuditLogEntry(BaseModel):
    id: UUID
    user_id: str
    user_email: str
    user_name: str
    action: str
    resource_type: str
    resource_id: str | None = None
    resource_name: str | None = None
    ip_address: str
    user_agent: str
    timestamp: datetime
    status: str
    details: dict[str, Any] | None = None


class AuditLogPage(BaseModel):
    data: list[AuditLogEntry]
    total: int
    page: int
    limit: int


class AuditLogCount(BaseModel):
    count: int


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
    encryption: str = "enabled"
