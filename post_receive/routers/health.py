"""Health check endpoint covering the database and the repository storage mount."""

from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from post_receive.config import settings
from post_receive.db.engine import get_db_session
from post_receive.schemas.health import HealthResponse

router = APIRouter()

DBSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/healthz", response_model=HealthResponse)
async def healthz(db: DBSession) -> HealthResponse:
    """Check database connectivity and that the repositories path is mounted.

    A missing repositories path is reported but does not fail the check, since
    the activity feed can still be written. Database errors propagate as 500.
    """
    await db.execute(text("SELECT 1"))
    mounted = Path(settings.repositories_path).is_dir()
    return HealthResponse(
        status="ok",
        database="connected",
        repositories="mounted" if mounted else "missing",
    )
