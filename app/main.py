"""
FastAPI application entrypoint.

Run locally:  uvicorn app.main:app --reload

Startup fails (EncryptionConfigError / AuthConfigError) when ENVIRONMENT is
production and ENCRYPTION_KEY or JWT_SECRET is missing or too short.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from app.api import admin, routes
from app.api.audit import AuditInterceptor, AuditStore
from app.config import Settings
from app.config import settings as default_settings
from app.models import audit as _audit_models  # noqa: F401  (registers audit_logs on Base)
from app.models.database import Base, SessionLocal, engine as default_engine
from app.services.audit import SqlAuditStore
from app.services.auth import jwt_secret
from app.services.encryption import EncryptionService

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    audit_store: AuditStore | None = None,
    bind=None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s")

    encryption = EncryptionService.from_settings(settings)
    jwt_secret(settings)
    if not encryption.enabled:
        logger.warning("ENCRYPTION_KEY not set or shorter than 32 chars; PHI fields are stored unencrypted")

    if bind is None:
        bind, session_factory = default_engine, SessionLocal
    else:
        session_factory = sessionmaker(bind=bind, autocommit=False, autoflush=False)
    interceptor = AuditInterceptor(audit_store or SqlAuditStore(session_factory, encryption))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(bind=bind)
        yield
        if interceptor.pending:
            logger.info("Waiting for %d audit log writes", interceptor.pending)
        await interceptor.drain()

    app = FastAPI(
        title="ClearCare Compliance API",
        description=(
            "Care-compliance backend: PHI fields encrypted with AES-256-GCM "
            "and an automatic audit trail of every authenticated request."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.encryption = encryption
    app.state.audit_interceptor = interceptor

    app.include_router(routes.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")
    return app


app = create_app()
