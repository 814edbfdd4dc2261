"""Database models."""
from app.db.models.checkin import CheckIn
from app.db.models.system_config import SystemConfig

__all__ = ["CheckIn", "SystemConfig"]
