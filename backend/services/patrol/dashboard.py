"""
Dashboard Aggregator - read-only rollups over persisted patrol state.

Plain queries, no locks: under concurrent writes each figure reflects
whatever was committed when it was read.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional, List
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from models import Patrol, Officer, Location, PATROL_IN_PROGRESS, DUTY_ON_DUTY, utcnow
from actor import ROLE_OFFICER

DASHBOARD_TIMEZONE = os.environ.get("PATROL_TIMEZONE", "UTC")
RECENT_PATROL_LIMIT = 5
OFFICER_PREVIEW_LIMIT = 5


def _zone(name: str):
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def day_bounds(now: datetime, tz_name: str = None):
    """UTC [start, end) of the calendar day containing now, in the dashboard zone."""
    tz = _zone(tz_name or DASHBOARD_TIMEZONE)
    local = now.astimezone(tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _live_patrols(db: Session):
    return db.query(Patrol).filter(Patrol.deleted_at.is_(None))


def count_active_patrols(db: Session) -> int:
    return _live_patrols(db).filter(Patrol.status == PATROL_IN_PROGRESS).count()


def count_officers_on_duty(db: Session) -> int:
    return db.query(Officer).filter(
        Officer.role == ROLE_OFFICER,
        Officer.duty_status == DUTY_ON_DUTY,
    ).count()


def count_patrols_today(db: Session, now: datetime = None, tz_name: str = None) -> int:
    start, end = day_bounds(now or utcnow(), tz_name)
    return _live_patrols(db).filter(
        Patrol.start_time >= start,
        Patrol.start_time < end,
    ).count()


def recent_patrols(db: Session, limit: int = RECENT_PATROL_LIMIT) -> List[Patrol]:
    """Patrols with the latest start times."""
    return _live_patrols(db).order_by(Patrol.start_time.desc(), Patrol.id.desc()).limit(limit).all()


def active_patrols(db: Session) -> List[Patrol]:
    return _live_patrols(db).filter(
        Patrol.status == PATROL_IN_PROGRESS
    ).order_by(Patrol.start_time.asc()).all()


def dashboard_stats(db: Session, now: Optional[datetime] = None, tz_name: str = None) -> dict:
    """
    Rollups for the dashboard landing page.

    Returns raw values; officers and recent patrols are model instances
    so the caller can resolve references for display.
    """
    officers = db.query(Officer).filter(
        Officer.role == ROLE_OFFICER
    ).order_by(Officer.name).limit(OFFICER_PREVIEW_LIMIT).all()

    return {
        "active_patrols": count_active_patrols(db),
        "officers_on_duty": count_officers_on_duty(db),
        "patrols_today": count_patrols_today(db, now, tz_name),
        "total_locations": db.query(Location).filter(Location.active == True).count(),
        "recent_patrols": recent_patrols(db),
        "officers": officers,
    }
