"""Audit log persistence and the admin log viewer query."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.services.encryption import EncryptionService
from app.services.redaction import redact_phi_from_string

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class AuditEntry:
    """A fully classified audit record, ready to be persisted."""

    user_id: str
    user_email: str
    user_name: str
    action: str
    resource_type: str
    status: str
    resource_id: str | None = None
    resource_name: str | None = None
    ip_address: str = "unknown"
    user_agent: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SqlAuditStore:
    """Writes audit entries to the ``audit_logs`` table, one short session per entry."""

    def __init__(self, session_factory: Callable[[], Session], encryption: EncryptionService):
        self._session_factory = session_factory
        self._encryption = encryption

    def write(self, entry: AuditEntry) -> None:
        db = self._session_factory()
        try:
            db.add(
                AuditLog(
                    user_id=entry.user_id,
                    user_email=self._encryption.encrypt(entry.user_email),
                    user_name=self._encryption.encrypt(entry.user_name),
                    action=entry.action,
                    resource_type=entry.resource_type,
                    resource_id=entry.resource_id,
                    resource_name=entry.resource_name,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    timestamp=entry.timestamp,
                    status=entry.status,
                    details=entry.details,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.debug(
            "AUDIT: %s (%s) %s %s/%s",
            entry.user_id,
            redact_phi_from_string(entry.user_email),
            entry.action,
            entry.resource_type,
            entry.resource_id,
        )


def clamp_pagination(page: int | None, limit: int | None) -> tuple[int, int]:
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE))
    return page, limit


def count_audit_logs(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(AuditLog)) or 0


def list_audit_logs(
    db: Session,
    encryption: EncryptionService,
    *,
    user_id: str | None = None,
    action: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Newest-first page of audit records for the admin viewer.

    Actor email/name are decrypted on the way out; rows written before
    encryption was enabled come back unchanged.
    """
    page, limit = clamp_pagination(page, limit)

    conditions = []
    if user_id:
        conditions.append(AuditLog.user_id == user_id)
    if action:
        conditions.append(AuditLog.action == action)
    if start_date:
        conditions.append(AuditLog.timestamp >= start_date)
    if end_date:
        conditions.append(AuditLog.timestamp <= end_date)

    total = db.scalar(select(func.count()).select_from(AuditLog).where(*conditions)) or 0
    rows = db.scalars(
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.timestamp.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    data = []
    for log in rows:
        email = encryption.decrypt(log.user_email)
        data.append(
            {
                "id": log.id,
                "user_id": log.user_id,
                "user_email": email,
                "user_name": encryption.decrypt(log.user_name) or email or log.user_id,
                "action": log.action,
                "resource_type": log.resource_type,
                "resource_id": log.resource_id,
                "resource_name": log.resource_name,
                "ip_address": log.ip_address,
                "user_agent": log.user_agent,
                "timestamp": log.timestamp,
                "status": log.status,
                "details": log.details,
            }
        )
    return {"data": data, "total": total, "page": page, "limit": limit}
