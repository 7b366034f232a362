import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from .config import settings
from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Create engine
engine_kwargs = {"pool_pre_ping": True, "echo": settings.DEBUG}
if "sqlite" in settings.DATABASE_URL:
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
    engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

engine = create_engine(settings.DATABASE_URL, **engine_kwargs)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Unit of work around a session.

    Nested calls join the outermost scope, which is the only one that
    commits. Any error rolls the whole unit back before it propagates.
    """
    depth = db.info.get("uow_depth", 0)
    db.info["uow_depth"] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except SQLAlchemyError as e:
        if depth > 0:
            raise
        db.rollback()
        db.info.pop("after_commit", None)
        logger.error(f"Transaction rolled back: {e}")
        raise PersistenceError(str(e)) from e
    except Exception:
        if depth == 0:
            db.rollback()
            db.info.pop("after_commit", None)
        raise
    finally:
        db.info["uow_depth"] = depth

    if depth == 0:
        _run_after_commit(db)


def after_commit(db: Session, callback: Callable[[], None]) -> None:
    """Queue work to run once the outermost transaction has committed"""
    db.info.setdefault("after_commit", []).append(callback)


def _run_after_commit(db: Session) -> None:
    callbacks = db.info.pop("after_commit", [])
    for callback in callbacks:
        try:
            callback()
        except Exception:
            # Committed state stands regardless of what happens here
            logger.exception(f"Post-commit task {getattr(callback, '__name__', callback)} failed")
