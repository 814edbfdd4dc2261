"""Database base class and model imports."""
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import all models here so Base.metadata knows every table
from app.db.models.checkin import CheckIn  # noqa: F401, E402
from app.db.models.system_config import SystemConfig  # noqa: F401, E402
