from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor.dependencies import get_session

router = APIRouter()


@router.get("")
async def health_check():
    """Report basic service health.

    Returns:
        A simple status message.
    """
    return {"status": "ok"}


@router.get("/db-check")
async def db_check(session: AsyncSession = Depends(get_session)):
    """Verify database connectivity.

    Returns:
        Status details indicating database health.
    """
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "details": str(e)}
