"""Admin endpoints – audit log viewer."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.audit import AuditedRoute
from app.api.deps import get_encryption
from app.models.database import get_db
from app.schemas.api import AuditLogCount, AuditLogPage
from app.services.audit import count_audit_logs, list_audit_logs
from app.services.auth import Actor, require_role
from app.services.encryption import EncryptionService

router = APIRouter(prefix="/admin", route_class=AuditedRoute)


@router.get("/audit-logs/count", response_model=AuditLogCount)
def get_audit_logs_count(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role("admin")),
):
    return AuditLogCount(count=count_audit_logs(db))


@router.get("/audit-logs", response_model=AuditLogPage)
def get_audit_logs(
    user_id: str | None = Query(None, alias="userId"),
    action: str | None = None,
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    page: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
    encryption: EncryptionService = Depends(get_encryption),
    actor: Actor = Depends(require_role("admin")),
):
    """Paginated, newest-first audit records filtered by actor, action and date range."""
    return list_audit_logs(
        db,
        encryption,
        user_id=user_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
