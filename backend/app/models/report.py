from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ReportPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReportedType(str, enum.Enum):
    USER = "user"
    EVENT = "event"
    REVIEW = "review"
    ARTIST = "artist"
    PROVIDER = "provider"


class Report(BaseModel):
    """A user-submitted complaint about content or another account."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    reporter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reported_type = Column(CaseInsensitiveEnum(ReportedType, name="reportedtype"), nullable=False)
    reported_id = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    description = Column(Text, nullable=False)

    status = Column(CaseInsensitiveEnum(ReportStatus, name="reportstatus"), nullable=False, default=ReportStatus.PENDING, index=True)
    priority = Column(CaseInsensitiveEnum(ReportPriority, name="reportpriority"), nullable=False, default=ReportPriority.MEDIUM)
    admin_notes = Column(Text, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    reporter = relationship("User", foreign_keys=[reporter_id])
