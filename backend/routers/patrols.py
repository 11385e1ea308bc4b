"""
Patrols router - patrol CRUD and lifecycle transitions

Thin HTTP layer: resolves the acting officer from the bearer token and
device coordinates (bounded wait), then hands off to the lifecycle and
checkpoint services. Domain errors propagate to the handlers in main.py.

Endpoints that wait on geolocation are plain `def` so FastAPI runs them in
its threadpool and the wait never holds up the event loop.
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
import math

from actor import Actor
from database import get_db
from jwt_auth import get_current_actor
from patrol_helpers import patrol_response, patrols_to_dicts, officer_to_dict, logs_to_dicts
from schemas_patrols import (
    PatrolCreate, PatrolUpdate, OfficerAssignment,
    StartRequest, CompleteRequest, CheckpointCompleteRequest,
)
from services.patrol import lifecycle, checkpoints, activity_log
from services.patrol.geolocation import CoordinateLocator, get_coordinate_locator

router = APIRouter()


# =============================================================================
# PATROL LIST / DETAIL
# =============================================================================

@router.get("")
async def list_patrols(
    status: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    priority: Optional[str] = None,
    officer: Optional[int] = None,
    sort: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db)
):
    """List patrols with filters and pagination"""
    patrols, total = lifecycle.list_patrols(
        db,
        status=status,
        start_date=start_date,
        end_date=end_date,
        priority=priority,
        officer_id=officer,
        sort=sort,
        page=page,
        limit=limit,
    )

    pagination = {}
    if page * limit < total:
        pagination["next"] = {"page": page + 1, "limit": limit}
    if page > 1:
        pagination["prev"] = {"page": page - 1, "limit": limit}

    return {
        "total": total,
        "totalPages": math.ceil(total / limit) if total else 0,
        "page": page,
        "limit": limit,
        "count": len(patrols),
        "pagination": pagination,
        "patrols": patrols_to_dicts(db, patrols),
    }


@router.post("", status_code=201)
async def create_patrol(
    data: PatrolCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Create a scheduled patrol (admin, manager)"""
    patrol = lifecycle.create_patrol(db, data, actor)
    return patrol_response(db, patrol)


@router.get("/{patrol_id}")
async def get_patrol(
    patrol_id: int,
    db: Session = Depends(get_db)
):
    """Patrol with its log entries (newest first)"""
    patrol = lifecycle.get_patrol(db, patrol_id)
    logs = activity_log.list_for_patrol(db, patrol_id)
    return {
        "patrol": patrol_response(db, patrol),
        "logs": logs_to_dicts(db, logs),
    }


@router.put("/{patrol_id}")
async def update_patrol(
    patrol_id: int,
    data: PatrolUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Edit patrol (creator or admin)"""
    patrol = lifecycle.update_patrol(db, patrol_id, data, actor)
    return patrol_response(db, patrol)


@router.delete("/{patrol_id}", status_code=204)
async def delete_patrol(
    patrol_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Delete patrol (creator or admin). Log entries are kept."""
    lifecycle.delete_patrol(db, patrol_id, actor)
    return Response(status_code=204)


# =============================================================================
# OFFICER ASSIGNMENT
# =============================================================================

@router.get("/{patrol_id}/officers")
async def get_patrol_officers(
    patrol_id: int,
    db: Session = Depends(get_db)
):
    """Officers assigned to a patrol, in assignment order"""
    return [officer_to_dict(o) for o in lifecycle.list_patrol_officers(db, patrol_id)]


@router.put("/{patrol_id}/officers")
async def assign_patrol_officers(
    patrol_id: int,
    data: OfficerAssignment,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Replace assigned officers (admin, manager)"""
    patrol = lifecycle.assign_officers(db, patrol_id, data.officers, actor)
    return patrol_response(db, patrol)


# =============================================================================
# LIFECYCLE TRANSITIONS
# =============================================================================

@router.put("/{patrol_id}/start")
def start_patrol(
    patrol_id: int,
    data: Optional[StartRequest] = None,
    actor: Actor = Depends(get_current_actor),
    locate: CoordinateLocator = Depends(get_coordinate_locator),
    db: Session = Depends(get_db)
):
    """Start patrol (assigned officer)"""
    coordinates = locate(data.coordinates if data else None)
    patrol = lifecycle.start_patrol(db, patrol_id, actor, coordinates)
    return patrol_response(db, patrol)


@router.post("/{patrol_id}/checkpoint/{checkpoint_id}")
def complete_checkpoint(
    patrol_id: int,
    checkpoint_id: int,
    data: Optional[CheckpointCompleteRequest] = None,
    actor: Actor = Depends(get_current_actor),
    locate: CoordinateLocator = Depends(get_coordinate_locator),
    db: Session = Depends(get_db)
):
    """Complete a checkpoint in a running patrol (assigned officer)"""
    data = data or CheckpointCompleteRequest()
    coordinates = locate(data.coordinates)
    patrol = checkpoints.complete_checkpoint(
        db, patrol_id, checkpoint_id, actor, data.notes, coordinates
    )
    return patrol_response(db, patrol)


@router.put("/{patrol_id}/complete")
def complete_patrol(
    patrol_id: int,
    data: Optional[CompleteRequest] = None,
    actor: Actor = Depends(get_current_actor),
    locate: CoordinateLocator = Depends(get_coordinate_locator),
    db: Session = Depends(get_db)
):
    """Complete patrol (assigned officer)"""
    data = data or CompleteRequest()
    coordinates = locate(data.coordinates)
    patrol = lifecycle.complete_patrol(db, patrol_id, actor, data.notes, coordinates)
    return patrol_response(db, patrol)


@router.put("/{patrol_id}/cancel")
async def cancel_patrol(
    patrol_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Cancel a scheduled or running patrol (admin, manager)"""
    patrol = lifecycle.cancel_patrol(db, patrol_id, actor)
    return patrol_response(db, patrol)
