"""Check-in attempt model."""
import uuid
from datetime import datetime, timezone as tz
from sqlalchemy import Column, String, DateTime, Index, CheckConstraint

from app.db.base import Base
from app.core.constants import CHECKIN_STATUSES, MAX_PRESENTED_CODE_LENGTH


def _new_checkin_id() -> str:
    return uuid.uuid4().hex


class CheckIn(Base):
    """One row per check-in attempt. Rows are never updated."""

    __tablename__ = "check_ins"

    id = Column(String(32), primary_key=True, default=_new_checkin_id)
    phone_number = Column(String(20), nullable=False)  # Canonical +<digits>
    otp = Column(String(MAX_PRESENTED_CODE_LENGTH), nullable=False)  # As presented, never the secret
    timestamp = Column(DateTime(timezone=True), nullable=False)
    validation_status = Column(String(10), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(tz.utc))

    __table_args__ = (
        CheckConstraint(
            "validation_status IN ({})".format(", ".join(f"'{s}'" for s in CHECKIN_STATUSES)),
            name="ck_check_ins_validation_status",
        ),
        Index("idx_checkins_phone", "phone_number"),
        Index("idx_checkins_timestamp", "timestamp"),
    )
