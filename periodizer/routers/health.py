"""Router exposing basic system endpoints."""
from __future__ import annotations

import logging
from datetime import timezone

from fastapi import APIRouter, HTTPException
from sqlalchemy import func

from periodizer.config import get_settings
from periodizer.database import SessionLocal
from periodizer.models.database_models import TrainingPlan


logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/status")
async def get_status() -> dict[str, str]:
    """Return a minimal status payload."""
    return {"status": "online"}


@router.get("/storage")
async def get_storage_status() -> dict:
    """
    Report plan store contents and whether text generation is configured.

    Returns:
        dict: {
            "plan_count": int,
            "last_updated": ISO timestamp or None,
            "text_generation": bool
        }
    """
    db = SessionLocal()

    try:
        plan_count = db.query(func.count(TrainingPlan.id)).scalar() or 0
        latest = db.query(TrainingPlan).order_by(TrainingPlan.updated_at.desc()).first()

        last_updated = None
        if latest and latest.updated_at:
            stamp = latest.updated_at
            if stamp.tzinfo is None:
                stamp = stamp.replace(tzinfo=timezone.utc)
            last_updated = stamp.isoformat()

        return {
            "plan_count": plan_count,
            "last_updated": last_updated,
            "text_generation": bool(get_settings().anthropic_api_key),
        }

    except Exception:
        logger.exception("Storage status check failed")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to check storage status")
    finally:
        db.close()
