from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from .. import models
from ..models import ReportPriority, ReportStatus
from ..schemas.report import ReportCreate, ReportResponse
from ..utils.errors import error_response
from .dependencies import get_current_active_user

router = APIRouter(tags=["reports"])
logger = logging.getLogger(__name__)


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: ReportCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    """File a complaint about a user, event, review, artist or provider."""
    description = payload.description.strip()
    if not description:
        raise error_response(
            "Please describe the problem",
            {"description": "required"},
            status.HTTP_400_BAD_REQUEST,
        )
    report = models.Report(
        reporter_id=current_user.id,
        reported_type=payload.reported_type,
        reported_id=payload.reported_id,
        reason=payload.reason.strip(),
        description=description,
        status=ReportStatus.PENDING,
        priority=ReportPriority.MEDIUM,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info(
        "Report %s filed by %s against %s %s",
        report.id,
        current_user.id,
        report.reported_type.value,
        report.reported_id,
    )
    return report
