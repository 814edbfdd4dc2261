"""Database package."""
from app.db.session import create_db_engine, make_session_factory
from app.db.base import Base
from app.db.store import CheckInStore

__all__ = ["create_db_engine", "make_session_factory", "Base", "CheckInStore"]
