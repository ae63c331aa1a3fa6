"""Health check route handler."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.database.db import get_db_session

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health")
async def health_check(session: AsyncSession = Depends(get_db_session)):
    """
    Health check endpoint.

    Returns:
        dict: Service status, including whether the database answers
    """
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "ok", "message": "API is running"}
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        return {"status": "unhealthy", "database": "unavailable", "message": f"Error: {str(e)}"}
