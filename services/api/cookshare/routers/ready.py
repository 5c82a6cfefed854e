import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cookshare.db import get_db
from cookshare.infra.redis_client import redis_reachable

router = APIRouter()
logger = logging.getLogger("cookshare.ready")


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    """Liveness plus dependency probes; never fails on a degraded backend."""
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Database probe failed: {e}")
        db_ok = False

    return {"ok": True, "redis_ok": await redis_reachable(), "db_ok": db_ok}
