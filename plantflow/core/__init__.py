from .config import settings
from .database import engine, SessionLocal, get_db, Base, transaction, after_commit
from .exceptions import PlantFlowError, ValidationError, NotFoundError, ConflictError, PersistenceError

__all__ = [
    "settings", "engine", "SessionLocal", "get_db", "Base", "transaction", "after_commit",
    "PlantFlowError", "ValidationError", "NotFoundError", "ConflictError", "PersistenceError",
]
