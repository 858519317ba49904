import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from hris_leave.config import get_settings
from hris_leave.db import SessionDep
from hris_leave.services.notification import NotificationDispatcher, get_notification_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded", "error"]
    version: str
    environment: str
    notifications_running: bool


@router.get("/health", response_model=HealthResponse)
async def health(
    session: SessionDep,
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> HealthResponse:
    """Return the health status of the API service."""
    settings = get_settings()
    status: Literal["ok", "degraded", "error"] = "ok"

    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database connectivity failed")
        status = "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        environment=settings.environment,
        notifications_running=dispatcher.running,
    )
