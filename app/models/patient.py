"""
Patient demographics.

Every PHI column holds an ``enc:`` envelope produced by EncryptionService
(rows written before encryption was enabled may still hold plaintext, which
decrypt() passes through). Only operational columns are stored in the clear.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text, Uuid

from app.models.database import Base

ENCRYPTED_COLUMNS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "medical_record_number",
    "phone",
    "address_street",
    "address_city",
    "address_state",
    "address_zip_code",
    "emergency_contact_name",
    "emergency_contact_relationship",
    "emergency_contact_phone",
)


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # PHI fields – AES-256-GCM envelopes
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    date_of_birth = Column(Text, nullable=False, default="")
    medical_record_number = Column(Text, nullable=False, default="")
    phone = Column(Text)
    address_street = Column(Text)
    address_city = Column(Text)
    address_state = Column(Text)
    address_zip_code = Column(Text)
    emergency_contact_name = Column(Text)
    emergency_contact_relationship = Column(Text)
    emergency_contact_phone = Column(Text)

    # Non-sensitive operational fields
    gender = Column(String(32))
    created_by = Column(String(128), comment="Actor id that created the record")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_patients_deleted_at", "deleted_at"),)
