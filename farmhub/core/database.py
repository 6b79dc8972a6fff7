"""
Database configuration and session management
"""
import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from farmhub.core.config import Settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine for the configured database URL"""
    database_url = settings.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://")

    if database_url.startswith("sqlite"):
        # SQLite is used by the test suite; connections are shared across the threadpool
        return create_engine(
            database_url,
            echo=settings.DEBUG,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        database_url,
        echo=settings.DEBUG,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency function to get database session

    Usage:
        @app.get("/")
        def read_data(db: Session = Depends(get_db)):
            # Use db session here
    """
    db = request.app.state.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine) -> None:
    """Initialize database tables (for development only)"""
    # Register every model on the metadata before creating tables
    import farmhub.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def test_connection(engine: Engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error(f"Database connection failed: {exc}")
        return False
