"""
Patrol log router - read and append patrol activity

Mounted twice in main.py:
- router:      /api/patrol/{patrol_id}/logs
- logs_router: /api/logs/{log_id}
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from actor import Actor
from database import get_db
from jwt_auth import get_current_actor
from patrol_helpers import logs_to_dicts, log_response
from schemas_patrols import PatrolLogCreate
from services.patrol import activity_log
from services.patrol.geolocation import CoordinateLocator, get_coordinate_locator

router = APIRouter()
logs_router = APIRouter()


@router.get("/{patrol_id}/logs")
async def get_patrol_logs(
    patrol_id: int,
    db: Session = Depends(get_db)
):
    """All log entries for a patrol, newest first"""
    logs = activity_log.list_for_patrol(db, patrol_id)
    return {"count": len(logs), "logs": logs_to_dicts(db, logs)}


@router.post("/{patrol_id}/logs", status_code=201)
def create_patrol_log(
    patrol_id: int,
    data: PatrolLogCreate,
    actor: Actor = Depends(get_current_actor),
    locate: CoordinateLocator = Depends(get_coordinate_locator),
    db: Session = Depends(get_db)
):
    """Append a log entry to a running patrol (assigned officer)"""
    coordinates = locate(data.coordinates)
    entry = activity_log.record_entry(
        db, patrol_id, actor, data.location, data.action, data.description, coordinates
    )
    return log_response(db, entry)


@logs_router.get("/{log_id}")
async def get_log(
    log_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Single log entry (admin, manager, or the officer who logged it)"""
    entry = activity_log.get_log(db, log_id, actor)
    return log_response(db, entry)
