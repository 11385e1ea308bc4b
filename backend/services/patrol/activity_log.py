"""
Activity Log Recorder - append-only patrol event ledger.

append() is a pure insert into the caller's transaction; it never commits,
updates or deletes. Lifecycle and checkpoint operations call it inside
their write unit so the state change and its log entry commit together.

Timestamps are server-assigned and strictly increasing within a patrol:
a new entry gets max(now, latest entry + 1 microsecond).
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy.orm import Session

from actor import Actor
from errors import ValidationError, NotFoundError, AuthorizationError, InvalidStateError
from models import (
    PatrolLog, Officer, Location, LOG_ACTIONS, PATROL_IN_PROGRESS, DUTY_ON_DUTY, utcnow
)
from services.patrol.authorization import require, OP_LOG_APPEND
from services.patrol.concurrency import apply_patrol_write, load_patrol

logger = logging.getLogger(__name__)

TIMESTAMP_STEP = timedelta(microseconds=1)


def _split_coordinates(coordinates):
    """Accept a Coordinates model, a {latitude, longitude} dict, or None."""
    if coordinates is None:
        return None, None
    if isinstance(coordinates, dict):
        return coordinates.get("latitude"), coordinates.get("longitude")
    return coordinates.latitude, coordinates.longitude


def next_timestamp(db: Session, patrol_id: int) -> datetime:
    """Server time, nudged forward past the patrol's latest entry if needed."""
    now = utcnow()
    latest = db.query(PatrolLog.timestamp).filter(
        PatrolLog.patrol_id == patrol_id
    ).order_by(PatrolLog.timestamp.desc()).first()

    if latest is not None and now <= latest[0]:
        return latest[0] + TIMESTAMP_STEP
    return now


def append(
    db: Session,
    patrol_id: int,
    officer_id: int,
    location_id: int,
    action: str,
    description: Optional[str] = None,
    coordinates=None,
) -> PatrolLog:
    """Insert one log entry into the current transaction and return it."""
    if action not in LOG_ACTIONS:
        raise ValidationError(f"Invalid log action '{action}'. Must be one of: {LOG_ACTIONS}")

    latitude, longitude = _split_coordinates(coordinates)

    entry = PatrolLog(
        patrol_id=patrol_id,
        officer_id=officer_id,
        location_id=location_id,
        timestamp=next_timestamp(db, patrol_id),
        action=action,
        description=description,
        latitude=latitude,
        longitude=longitude,
    )
    db.add(entry)
    db.flush()

    logger.debug(f"Patrol {patrol_id} log {entry.id}: {action} by officer {officer_id}")
    return entry


# =============================================================================
# READS
# =============================================================================

def list_for_patrol(db: Session, patrol_id: int) -> List[PatrolLog]:
    """Logs for one patrol, newest first."""
    load_patrol(db, patrol_id)
    return db.query(PatrolLog).filter(
        PatrolLog.patrol_id == patrol_id
    ).order_by(PatrolLog.timestamp.desc(), PatrolLog.id.desc()).all()


def list_for_officer(db: Session, officer_id: int) -> List[PatrolLog]:
    """Logs across all patrols for one officer, newest first."""
    if not db.query(Officer).filter(Officer.id == officer_id).first():
        raise NotFoundError(f"User not found with id of {officer_id}")

    return db.query(PatrolLog).filter(
        PatrolLog.officer_id == officer_id
    ).order_by(PatrolLog.timestamp.desc(), PatrolLog.id.desc()).all()


def officer_activity(db: Session, officer_id: int, actor: Actor) -> List[PatrolLog]:
    """list_for_officer for the officer themselves, or a manager/admin."""
    logs = list_for_officer(db, officer_id)
    if actor.officer_id != officer_id and not actor.is_supervisor:
        raise AuthorizationError("Not authorized to access these logs")
    return logs


def get_log(db: Session, log_id: int, actor: Actor) -> PatrolLog:
    entry = db.query(PatrolLog).filter(PatrolLog.id == log_id).first()
    if not entry:
        raise NotFoundError(f"Log not found with id of {log_id}")

    if not actor.is_supervisor and entry.officer_id != actor.officer_id:
        raise AuthorizationError("Not authorized to access this log")
    return entry


# =============================================================================
# MANUAL ENTRY
# =============================================================================

def record_entry(
    db: Session,
    patrol_id: int,
    actor: Actor,
    location_id: int,
    action: str,
    description: Optional[str] = None,
    coordinates=None,
) -> PatrolLog:
    """
    Officer-posted log entry (note, issue, break, incident report...).

    Only assigned officers, only while the patrol is in progress.
    A check-in entry also puts the officer on duty.
    """
    if action not in LOG_ACTIONS:
        raise ValidationError(f"Invalid log action '{action}'. Must be one of: {LOG_ACTIONS}")
    if not db.query(Location).filter(Location.id == location_id).first():
        raise ValidationError(f"Unknown location {location_id}")

    def mutate(patrol):
        require(actor, OP_LOG_APPEND, patrol)
        if patrol.status != PATROL_IN_PROGRESS:
            raise InvalidStateError("Patrol is not in progress")

        entry = append(
            db, patrol.id, actor.officer_id, location_id, action, description, coordinates
        )
        if action == "check-in":
            officer = db.query(Officer).filter(Officer.id == actor.officer_id).first()
            if officer:
                officer.duty_status = DUTY_ON_DUTY
        return entry

    entry = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id}: {action} logged by {actor}")
    return entry
