"""Database engine and sessions"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dailyreel.core.config import settings
from dailyreel.models import Base

# SQLite (local dev, tests) needs the connection usable across FastAPI's threadpool
_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=3600,
    connect_args={"check_same_thread": False} if _is_sqlite else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Request-scoped session, closed when the request ends"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create missing tables (alembic owns schema changes after that)"""
    Base.metadata.create_all(bind=engine)
