"""
Database engine and session for the audit log (SQLite by default).
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pkce_proxy.config import AUDIT_DATABASE_URL
from pkce_proxy.models import Base

# In-memory SQLite needs StaticPool so every session sees the same database
if AUDIT_DATABASE_URL.startswith("sqlite:///:memory:"):
    engine = create_engine(
        AUDIT_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    connect_args = {"check_same_thread": False} if "sqlite" in AUDIT_DATABASE_URL else {}
    engine = create_engine(AUDIT_DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency: yield a DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
