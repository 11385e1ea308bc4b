"""
Patrol Helper Functions

Read-side joins for API responses. Stored patrols and logs hold officer and
location ids only; names and coordinates are resolved here, in one batch
query per directory, when a response is built.

Contains:
- Directory lookups (officers, locations, patrol titles)
- Patrol / checkpoint / log / officer to dict
"""

from sqlalchemy.orm import Session
from typing import Iterable, List, Dict

from models import Patrol, Checkpoint, PatrolLog, Officer, Location


def iso(dt):
    """Safely convert datetime to ISO string"""
    return dt.isoformat() if dt else None


# =============================================================================
# DIRECTORY LOOKUPS
# =============================================================================

def _officers_by_id(db: Session, ids: Iterable[int]) -> Dict[int, Officer]:
    ids = set(ids)
    if not ids:
        return {}
    return {o.id: o for o in db.query(Officer).filter(Officer.id.in_(ids)).all()}


def _locations_by_id(db: Session, ids: Iterable[int]) -> Dict[int, Location]:
    ids = set(ids)
    if not ids:
        return {}
    return {loc.id: loc for loc in db.query(Location).filter(Location.id.in_(ids)).all()}


def officer_ref(officer_id: int, officers: Dict[int, Officer]) -> dict:
    o = officers.get(officer_id)
    if not o:
        return {"id": officer_id, "name": None}
    return {"id": o.id, "name": o.name, "email": o.email, "badgeNumber": o.badge_number}


def location_ref(location_id: int, locations: Dict[int, Location]) -> dict:
    loc = locations.get(location_id)
    if not loc:
        return {"id": location_id, "name": None}
    return {
        "id": loc.id,
        "name": loc.name,
        "coordinates": {"latitude": loc.latitude, "longitude": loc.longitude},
    }


# =============================================================================
# SERIALIZERS
# =============================================================================

def officer_to_dict(o: Officer) -> dict:
    return {
        "id": o.id,
        "name": o.name,
        "email": o.email,
        "badgeNumber": o.badge_number,
        "role": o.role,
        "status": o.duty_status,
    }


def checkpoint_to_dict(cp: Checkpoint, locations: Dict[int, Location]) -> dict:
    return {
        "id": cp.id,
        "location": location_ref(cp.location_id, locations),
        "requiredTime": iso(cp.required_time),
        "actualTime": iso(cp.actual_time),
        "status": cp.status,
        "notes": cp.notes,
    }


def patrol_to_dict(patrol: Patrol, officers: Dict[int, Officer], locations: Dict[int, Location]) -> dict:
    return {
        "id": patrol.id,
        "title": patrol.title,
        "assignedOfficers": [officer_ref(oid, officers) for oid in patrol.assigned_officer_ids],
        "assignedBy": officer_ref(patrol.created_by, officers),
        "locations": [location_ref(lid, locations) for lid in patrol.location_ids],
        "startTime": iso(patrol.start_time),
        "endTime": iso(patrol.end_time),
        "status": patrol.status,
        "notes": patrol.notes,
        "priority": patrol.priority,
        "recurrence": patrol.recurrence,
        "checkpoints": [checkpoint_to_dict(cp, locations) for cp in patrol.checkpoints],
        "version": patrol.version,
        "createdAt": iso(patrol.created_at),
        "updatedAt": iso(patrol.updated_at),
    }


def patrols_to_dicts(db: Session, patrols: List[Patrol]) -> List[dict]:
    """Serialize several patrols with one officer and one location lookup."""
    officer_ids, location_ids = set(), set()
    for p in patrols:
        officer_ids.update(p.assigned_officer_ids)
        officer_ids.add(p.created_by)
        location_ids.update(p.location_ids)
        location_ids.update(cp.location_id for cp in p.checkpoints)

    officers = _officers_by_id(db, officer_ids)
    locations = _locations_by_id(db, location_ids)
    return [patrol_to_dict(p, officers, locations) for p in patrols]


def patrol_response(db: Session, patrol: Patrol) -> dict:
    return patrols_to_dicts(db, [patrol])[0]


def logs_to_dicts(db: Session, logs: List[PatrolLog], include_patrol: bool = False) -> List[dict]:
    """
    Serialize log entries with officer and location names.
    include_patrol adds a short patrol summary (officer activity view).
    """
    officers = _officers_by_id(db, (log.officer_id for log in logs))
    locations = _locations_by_id(db, (log.location_id for log in logs))

    patrols = {}
    if include_patrol:
        patrol_ids = {log.patrol_id for log in logs}
        if patrol_ids:
            patrols = {p.id: p for p in db.query(Patrol).filter(Patrol.id.in_(patrol_ids)).all()}

    result = []
    for log in logs:
        entry = {
            "id": log.id,
            "patrol": log.patrol_id,
            "officer": officer_ref(log.officer_id, officers),
            "location": location_ref(log.location_id, locations),
            "timestamp": iso(log.timestamp),
            "action": log.action,
            "description": log.description,
            "coordinates": log.coordinates,
        }
        if include_patrol:
            p = patrols.get(log.patrol_id)
            if p:
                entry["patrol"] = {
                    "id": p.id,
                    "title": p.title,
                    "startTime": iso(p.start_time),
                    "endTime": iso(p.end_time),
                    "status": p.status,
                }
        result.append(entry)
    return result


def log_response(db: Session, log: PatrolLog) -> dict:
    return logs_to_dicts(db, [log], include_patrol=True)[0]
