"""
Dashboard router - patrol rollups

Mounted under /api/patrol ahead of the patrols router so the fixed paths
are matched before /{patrol_id}.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from patrol_helpers import patrols_to_dicts, officer_to_dict
from services.patrol import dashboard

router = APIRouter()


@router.get("/dashboard-stats")
async def get_dashboard_stats(db: Session = Depends(get_db)):
    """Active/on-duty/today counts plus recent patrols"""
    stats = dashboard.dashboard_stats(db)
    return {
        "activePatrols": stats["active_patrols"],
        "officersOnDuty": stats["officers_on_duty"],
        "patrolsToday": stats["patrols_today"],
        "totalLocations": stats["total_locations"],
        "recentPatrols": patrols_to_dicts(db, stats["recent_patrols"]),
        "officers": [officer_to_dict(o) for o in stats["officers"]],
    }


@router.get("/active")
async def get_active_patrols(db: Session = Depends(get_db)):
    """Patrols currently in progress"""
    patrols = dashboard.active_patrols(db)
    return {"count": len(patrols), "patrols": patrols_to_dicts(db, patrols)}
