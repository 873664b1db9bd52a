from typing import Dict, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Optional[Dict[str, str]] = None,
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    field_errors = field_errors or {}
    logger.error("%s %s", message, field_errors)
    detail = {"message": message, "field_errors": field_errors}
    return HTTPException(status_code=code, detail=detail)


def not_found(entity: str, field: str = "id") -> HTTPException:
    return error_response(f"{entity} not found.", {field: "not_found"}, status.HTTP_404_NOT_FOUND)


def forbidden(message: str) -> HTTPException:
    return error_response(message, {}, status.HTTP_403_FORBIDDEN)


def invalid_transition(exc: Exception) -> HTTPException:
    """Map a rejected status change to 409 Conflict."""
    return error_response(str(exc), {"state": "invalid_transition"}, status.HTTP_409_CONFLICT)
