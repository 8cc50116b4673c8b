"""
Audit Log – append-only compliance trail.

One row per authenticated API request, written by the audit interceptor.
Rows are never updated or deleted by the application.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from app.models.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, comment="Authenticated actor id")
    user_email = Column(Text, nullable=False, default="", comment="AES-encrypted actor email")
    user_name = Column(Text, nullable=False, default="", comment="AES-encrypted actor display name")
    action = Column(String(64), nullable=False, comment="read | write | delete | login | logout | ...")
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(String(128), nullable=True)
    resource_name = Column(String(256), nullable=True)
    ip_address = Column(String(64), nullable=False, default="unknown")
    user_agent = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    status = Column(String(16), nullable=False, comment="success | denied | failure")
    details = Column(
        JSON().with_variant(JSONB, "postgresql"),
        comment="Method, path, scrubbed query/body, status code, error",
    )

    __table_args__ = (
        Index("ix_audit_logs_timestamp", "timestamp"),
        Index("ix_audit_logs_user_id", "user_id"),
        Index("ix_audit_logs_action", "action"),
    )
