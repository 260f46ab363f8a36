from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from typing import Callable, Generator, Optional, TypeVar
import logging
import redis

from .config import settings
from .exceptions import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def make_engine(url: str):
    """Create an engine; SQLite (tests) skips the connection pool settings."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )


engine = make_engine(settings.get_database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client


def run_with_retry(
    db: Session,
    work: Callable[[], T],
    description: str,
    max_attempts: Optional[int] = None,
) -> T:
    """Run ``work`` and commit, retrying on optimistic version conflicts.

    User, doctor and appointment rows carry a version column, so a concurrent writer
    makes our UPDATE match no rows and SQLAlchemy raises StaleDataError. The
    unit is rolled back and ``work`` runs again against fresh rows. Any other
    exception rolls back and propagates.
    """
    attempts = max_attempts or settings.STORAGE_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Concurrent update while trying to {description} "
                f"(attempt {attempt}/{attempts}), retrying"
            )
        except OperationalError as e:
            db.rollback()
            logger.error(f"Storage error while trying to {description}: {str(e)}")
            raise TransientStorageError() from e
        except Exception:
            db.rollback()
            raise

    logger.error(f"Gave up trying to {description} after {attempts} conflicting attempts")
    raise TransientStorageError(f"Could not {description} due to concurrent updates, please retry")


# Database initialization
def init_db():
    """Initialize database tables."""
    from .. import models  # noqa: F401 - registers all tables on Base
    Base.metadata.create_all(bind=engine)
