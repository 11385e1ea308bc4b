"""
Patrol Pydantic Schemas

Request bodies for the patrol, checkpoint and log endpoints.
JSON uses camelCase (assignedOfficers, startTime); snake_case is accepted too.
Semantic checks (time ordering, known officers, vocabularies) live in the
services so they apply to every caller, not just HTTP.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# SHARED STRUCTURES
# =============================================================================

class Coordinates(CamelModel):
    """WGS84 point reported by the officer's device"""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class CheckpointSpec(CamelModel):
    """Checkpoint as supplied when creating or editing a patrol"""
    location: int
    required_time: Optional[datetime] = None
    notes: Optional[str] = None


# =============================================================================
# PATROL CRUD SCHEMAS
# =============================================================================

class PatrolCreate(CamelModel):
    """Create new patrol (status starts as scheduled)"""
    title: str
    assigned_officers: List[int] = []
    locations: List[int] = []
    start_time: datetime
    end_time: datetime
    checkpoints: List[CheckpointSpec] = []
    notes: Optional[str] = None
    priority: str = "medium"        # low, medium, high, urgent
    recurrence: str = "none"        # daily, weekly, bi-weekly, monthly, none


class PatrolUpdate(CamelModel):
    """
    Edit patrol document. Status is not editable here; it only moves
    through start / complete / cancel.
    """
    title: Optional[str] = None
    assigned_officers: Optional[List[int]] = None
    locations: Optional[List[int]] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    checkpoints: Optional[List[CheckpointSpec]] = None
    notes: Optional[str] = None
    priority: Optional[str] = None
    recurrence: Optional[str] = None


class OfficerAssignment(CamelModel):
    officers: List[int]


# =============================================================================
# LIFECYCLE ACTION SCHEMAS
# =============================================================================

class StartRequest(CamelModel):
    coordinates: Optional[Coordinates] = None


class CompleteRequest(CamelModel):
    notes: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class CheckpointCompleteRequest(CamelModel):
    notes: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class PatrolLogCreate(CamelModel):
    """Manual log entry posted by an assigned officer"""
    location: int
    action: str
    description: Optional[str] = None
    coordinates: Optional[Coordinates] = None
