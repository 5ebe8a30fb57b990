import logging
from typing import Generator

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from core.config import settings

logger = logging.getLogger(__name__)


# ============================================================
# ✅ Engine for the local mirror store
# ============================================================
def build_engine(database_url: str):
    """
    In-memory SQLite needs a single shared connection so every request
    sees the same tables; other databases get pool_pre_ping.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)


# ============================================================
# ✅ Create tables (called at startup)
# ============================================================
def create_db_and_tables() -> None:
    """
    Create all mirror tables based on SQLModel models.
    This runs automatically at app startup.
    """
    # Register table metadata before create_all.
    import models.models  # noqa: F401

    try:
        SQLModel.metadata.create_all(engine)
        logger.info("Mirror tables created.")
    except Exception as e:
        logger.error("Failed to create tables: %s", e)
        raise


# ============================================================
# ✅ Dependency: FastAPI session generator
# ============================================================
def get_session() -> Generator[Session, None, None]:
    """
    Provides a SQLModel Session to FastAPI dependencies.
    Closes automatically after request completes.
    """
    with Session(engine) as session:
        yield session
