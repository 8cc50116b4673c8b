"""
FastAPI routes – health check and patient demographics.

Every router uses AuditedRoute, so each authenticated call is recorded in the
audit log without the endpoints doing anything themselves.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.audit import AuditedRoute
from app.api.deps import get_encryption, get_settings
from app.models.database import get_db
from app.schemas.api import HealthResponse, PatientCreate, PatientResponse, PatientUpdate
from app.services import patients as patient_service
from app.services.auth import Actor, get_current_actor, require_role
from app.services.encryption import EncryptionService

logger = logging.getLogger(__name__)

router = APIRouter(route_class=AuditedRoute)

WRITE_ROLES = ("provider", "admin")


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(
    db: Session = Depends(get_db),
    settings=Depends(get_settings),
    encryption: EncryptionService = Depends(get_encryption),
):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
        encryption="enabled" if encryption.enabled else "disabled",
    )


# ---------------------------------------------------------------------------
# Patients (PHI encrypted at rest)
# ---------------------------------------------------------------------------

def _load_patient(db: Session, patient_id: UUID):
    patient = patient_service.get_patient(db, patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.post("/patients", response_model=PatientResponse, status_code=201)
def create_patient(
    request: PatientCreate,
    db: Session = Depends(get_db),
    encryption: EncryptionService = Depends(get_encryption),
    actor: Actor = Depends(require_role(*WRITE_ROLES)),
):
    try:
        patient = patient_service.create_patient(
            db, encryption, request.model_dump(exclude_none=True), created_by=actor.id
        )
    except patient_service.PatientValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors)
    return PatientResponse(**patient_service.to_plain(patient, encryption))


@router.get("/patients", response_model=list[PatientResponse])
def list_patients(
    db: Session = Depends(get_db),
    encryption: EncryptionService = Depends(get_encryption),
    actor: Actor = Depends(get_current_actor),
):
    return [
        PatientResponse(**patient_service.to_plain(p, encryption))
        for p in patient_service.list_patients(db)
    ]


@router.get("/patients/{patient_id}", response_model=PatientResponse)
def get_patient(
    patient_id: UUID,
    db: Session = Depends(get_db),
    encryption: EncryptionService = Depends(get_encryption),
    actor: Actor = Depends(get_current_actor),
):
    patient = _load_patient(db, patient_id)
    return PatientResponse(**patient_service.to_plain(patient, encryption))


@router.patch("/patients/{patient_id}", response_model=PatientResponse)
def update_patient(
    patient_id: UUID,
    request: PatientUpdate,
    db: Session = Depends(get_db),
    encryption: EncryptionService = Depends(get_encryption),
    actor: Actor = Depends(require_role(*WRITE_ROLES)),
):
    patient = _load_patient(db, patient_id)
    try:
        patient = patient_service.update_patient(
            db, encryption, patient, request.model_dump(exclude_unset=True)
        )
    except patient_service.PatientValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors)
    return PatientResponse(**patient_service.to_plain(patient, encryption))


@router.delete("/patients/{patient_id}", status_code=204)
def delete_patient(
    patient_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role("admin")),
):
    patient_service.soft_delete_patient(db, _load_patient(db, patient_id))
    return Response(status_code=204)
