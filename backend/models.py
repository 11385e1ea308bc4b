"""
SQLAlchemy models for PatrolSheet

Patrols are stored normalized: officers and route locations are ordered
reference rows, never embedded copies. Names and coordinates are joined in
at the query boundary (see patrol_helpers.py).

All timestamps are stored as UTC and come back timezone-aware.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, Text, Float, ForeignKey, DateTime, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from database import Base


# =============================================================================
# STATUS VOCABULARIES
# =============================================================================

PATROL_SCHEDULED = "scheduled"
PATROL_IN_PROGRESS = "in-progress"
PATROL_COMPLETED = "completed"
PATROL_CANCELLED = "cancelled"

PATROL_STATUSES = [PATROL_SCHEDULED, PATROL_IN_PROGRESS, PATROL_COMPLETED, PATROL_CANCELLED]
TERMINAL_STATUSES = (PATROL_COMPLETED, PATROL_CANCELLED)

CHECKPOINT_PENDING = "pending"
CHECKPOINT_COMPLETED = "completed"
CHECKPOINT_MISSED = "missed"

CHECKPOINT_STATUSES = [CHECKPOINT_PENDING, CHECKPOINT_COMPLETED, CHECKPOINT_MISSED]

LOG_ACTIONS = ["check-in", "check-out", "incident-report", "note", "issue", "break"]

PRIORITIES = ["low", "medium", "high", "urgent"]
RECURRENCES = ["daily", "weekly", "bi-weekly", "monthly", "none"]

DUTY_AVAILABLE = "available"
DUTY_ON_DUTY = "on-duty"
DUTY_OFF_DUTY = "off-duty"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC. Naive input is taken as UTC."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# =============================================================================
# DIRECTORY MIRRORS (owned by the identity provider / location directory)
# =============================================================================

class Officer(Base):
    """Officer identity as published by the identity provider"""
    __tablename__ = "officers"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255))
    badge_number = Column(String(30))
    role = Column(String(20), nullable=False, default="officer")  # admin, manager, officer
    duty_status = Column(String(20), nullable=False, default=DUTY_AVAILABLE)
    active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, default=utcnow)


class Location(Base):
    """Named geographic point from the location directory"""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    location_type = Column(String(20), default="checkpoint")  # building, area, checkpoint, entrance, perimeter, other
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, default=utcnow)


# =============================================================================
# PATROL
# =============================================================================

class Patrol(Base):
    """
    A scheduled security route.

    version is the optimistic-concurrency token: every committed change to
    the patrol row bumps it, and an UPDATE against a stale version fails.
    """
    __tablename__ = "patrols"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    created_by = Column(Integer, ForeignKey("officers.id"), nullable=False)

    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)

    status = Column(String(20), nullable=False, default=PATROL_SCHEDULED)
    notes = Column(Text)
    priority = Column(String(10), nullable=False, default="medium")
    recurrence = Column(String(10), nullable=False, default="none")

    version = Column(Integer, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)
    deleted_at = Column(UTCDateTime)  # Soft delete keeps the log stream intact

    officer_links = relationship(
        "PatrolOfficer", order_by="PatrolOfficer.position",
        cascade="all, delete-orphan", back_populates="patrol"
    )
    stops = relationship(
        "PatrolStop", order_by="PatrolStop.position",
        cascade="all, delete-orphan", back_populates="patrol"
    )
    checkpoints = relationship(
        "Checkpoint", order_by="Checkpoint.id",
        cascade="all, delete-orphan", back_populates="patrol"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def assigned_officer_ids(self):
        return [link.officer_id for link in self.officer_links]

    @property
    def location_ids(self):
        return [stop.location_id for stop in self.stops]

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def set_officers(self, officer_ids):
        self.officer_links = [
            PatrolOfficer(officer_id=oid, position=i) for i, oid in enumerate(officer_ids)
        ]

    def set_route(self, location_ids):
        self.stops = [
            PatrolStop(location_id=lid, position=i) for i, lid in enumerate(location_ids)
        ]

    def find_checkpoint(self, checkpoint_id: int):
        for checkpoint in self.checkpoints:
            if checkpoint.id == checkpoint_id:
                return checkpoint
        return None


class PatrolOfficer(Base):
    """Ordered officer assignment"""
    __tablename__ = "patrol_officers"

    id = Column(Integer, primary_key=True)
    patrol_id = Column(Integer, ForeignKey("patrols.id", ondelete="CASCADE"), nullable=False, index=True)
    officer_id = Column(Integer, ForeignKey("officers.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    patrol = relationship("Patrol", back_populates="officer_links")


class PatrolStop(Base):
    """Ordered route location"""
    __tablename__ = "patrol_stops"

    id = Column(Integer, primary_key=True)
    patrol_id = Column(Integer, ForeignKey("patrols.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    position = Column(Integer, nullable=False)

    patrol = relationship("Patrol", back_populates="stops")


class Checkpoint(Base):
    """
    Required stop within one patrol.
    actual_time is set exactly when status is completed.
    """
    __tablename__ = "checkpoints"

    id = Column(Integer, primary_key=True)
    patrol_id = Column(Integer, ForeignKey("patrols.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    required_time = Column(UTCDateTime)
    actual_time = Column(UTCDateTime)
    status = Column(String(20), nullable=False, default=CHECKPOINT_PENDING)
    notes = Column(Text)

    patrol = relationship("Patrol", back_populates="checkpoints")


# =============================================================================
# PATROL LOG (append-only)
# =============================================================================

class PatrolLog(Base):
    """
    Immutable event record. Rows are inserted, never updated or deleted.
    timestamp is server-assigned and strictly increasing per patrol.
    """
    __tablename__ = "patrol_logs"

    id = Column(Integer, primary_key=True)
    patrol_id = Column(Integer, ForeignKey("patrols.id"), nullable=False)
    officer_id = Column(Integer, ForeignKey("officers.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    timestamp = Column(UTCDateTime, nullable=False)
    action = Column(String(20), nullable=False)
    description = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_patrol_logs_patrol_ts", "patrol_id", "timestamp"),
        Index("ix_patrol_logs_officer_ts", "officer_id", "timestamp"),
    )

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"latitude": self.latitude, "longitude": self.longitude}
