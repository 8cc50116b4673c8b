from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db(request: Request):
    """FastAPI dependency that yields a session bound to the app's database."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
