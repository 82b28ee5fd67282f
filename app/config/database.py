"""Database configuration and connection setup"""
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options(database_url: str) -> dict:
    """Pool options only apply to server databases; SQLite gets the defaults"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


# Create database engine with connection pooling
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_options(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_raise(db: Session, action: str) -> None:
    """Commit the unit of work; on storage errors roll back and raise PersistenceFailure"""
    from app.core.exceptions import PersistenceFailure

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Database error while trying to {action}: {exc}", exc_info=True)
        raise PersistenceFailure(f"Could not {action}", {"cause": exc.__class__.__name__}) from exc


@contextmanager
def unit_of_work(db: Session, action: str):
    """
    Run a read-check-write block as one transaction: commit when the block
    finishes, roll back on any error. Storage errors raised anywhere in the
    block (flush, lock, query or commit) become PersistenceFailure.
    """
    from app.core.exceptions import PersistenceFailure

    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Database error while trying to {action}: {exc}", exc_info=True)
        raise PersistenceFailure(f"Could not {action}", {"cause": exc.__class__.__name__}) from exc
    except Exception:
        db.rollback()
        raise


def create_tables(bind=None):
    """Create all scheduling tables that do not exist yet"""
    from app.models import Base

    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    create_tables()
    print("Database tables created successfully")
