from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.report import ReportedType, ReportPriority, ReportStatus


class ReportCreate(BaseModel):
    reported_type: ReportedType
    reported_id: int
    reason: str = Field(min_length=1)
    description: str = ""


class ReportResponse(BaseModel):
    id: int
    reporter_id: int
    reported_type: ReportedType
    reported_id: int
    reason: str
    description: str
    status: ReportStatus
    priority: ReportPriority
    admin_notes: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}
