"""
Officers router - officer activity view

Officer identity is owned by the identity provider; only activity reads
live here.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from actor import Actor
from database import get_db
from jwt_auth import get_current_actor
from patrol_helpers import logs_to_dicts
from services.patrol import activity_log

router = APIRouter()


@router.get("/{officer_id}/logs")
async def get_officer_logs(
    officer_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Log entries across all patrols for one officer (self, admin, manager)"""
    logs = activity_log.officer_activity(db, officer_id, actor)
    return {"count": len(logs), "logs": logs_to_dicts(db, logs, include_patrol=True)}
