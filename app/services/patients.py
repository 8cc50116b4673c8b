"""
Patient data access.

PHI columns are encrypted on the way in and decrypted on the way out; callers
only ever see plaintext dicts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.patient import ENCRYPTED_COLUMNS, Patient
from app.schemas.patient import PATIENT_SCHEMA
from app.services.encryption import EncryptionService
from app.services.redaction import redact_phi_from_object
from app.services.validation import validate_against_schema

logger = logging.getLogger(__name__)


class PatientValidationError(ValueError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _check(payload: dict[str, Any]) -> None:
    errors = validate_against_schema(payload, PATIENT_SCHEMA)
    if errors:
        raise PatientValidationError(errors)


def to_plain(patient: Patient, encryption: EncryptionService) -> dict[str, Any]:
    stored = {column: getattr(patient, column) for column in ENCRYPTED_COLUMNS}
    view = encryption.decrypted_view(stored, ENCRYPTED_COLUMNS)
    plain: dict[str, Any] = {
        "id": patient.id,
        "gender": patient.gender,
        "created_at": patient.created_at,
    }
    # cleared columns are stored as ""
    plain.update((column, view[column] or None) for column in view)
    return plain


def create_patient(
    db: Session, encryption: EncryptionService, payload: dict[str, Any], *, created_by: str
) -> Patient:
    _check(payload)
    patient = Patient(
        gender=payload.get("gender"),
        created_by=created_by,
        **encryption.encrypt_fields(payload, ENCRYPTED_COLUMNS),
    )
    db.add(patient)
    db.commit()
    db.refresh(patient)
    logger.info("Created patient %s", patient.id)
    return patient


def get_patient(db: Session, patient_id: UUID) -> Patient | None:
    return db.scalars(
        select(Patient).where(Patient.id == patient_id, Patient.deleted_at.is_(None))
    ).first()


def list_patients(db: Session) -> list[Patient]:
    return list(
        db.scalars(
            select(Patient).where(Patient.deleted_at.is_(None)).order_by(Patient.created_at)
        ).all()
    )


def update_patient(
    db: Session, encryption: EncryptionService, patient: Patient, changes: dict[str, Any]
) -> Patient:
    _check(changes)
    for column, value in encryption.encrypt_fields(changes, ENCRYPTED_COLUMNS).items():
        setattr(patient, column, value)
    if "gender" in changes:
        patient.gender = changes["gender"]
    db.commit()
    db.refresh(patient)
    logger.info("Updated patient %s: %s", patient.id, redact_phi_from_object(changes))
    return patient


def soft_delete_patient(db: Session, patient: Patient) -> None:
    patient.deleted_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("Soft-deleted patient %s", patient.id)
