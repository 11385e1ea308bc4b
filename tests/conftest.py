"""
PatrolSheet - Test Infrastructure (conftest.py)
===============================================
Provides:
  - Throwaway SQLite database (PATROL_DATABASE_URL set before any import)
  - Fresh schema per test
  - Seeded officer roster and location directory
  - FastAPI TestClient and bearer-token header helpers
  - make_patrol() service-level factory
"""

import os
import sys
import tempfile
from datetime import timedelta
from types import SimpleNamespace

import pytest

# Ensure backend/ is importable the way main.py imports its modules
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(ROOT_DIR, "backend"))

# ============================================================================
# TEST MODE: separate SQLite database, fixed signing key
# ============================================================================
TEST_DB_DIR = tempfile.mkdtemp(prefix="patrolsheet_test_")
TEST_DB_PATH = os.path.join(TEST_DB_DIR, "patrol_test.db")

os.environ["PATROL_DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["PATROL_JWT_SECRET"] = "patrolsheet-test-secret"

from actor import Actor  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from jwt_auth import create_access_token  # noqa: E402
from models import Officer, Location, utcnow  # noqa: E402
from schemas_patrols import PatrolCreate  # noqa: E402
from services.patrol import lifecycle  # noqa: E402


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def fresh_schema():
    """Drop and recreate every table around each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """
    Officer roster + location directory.

    Roles: admin, manager, manager2 (second manager), o1/o2/o3 (officers).
    Locations: gate, dock, roof.
    """
    officers = {
        "admin": Officer(name="Dana Reyes", email="dana@example.com", badge_number="A-1", role="admin"),
        "manager": Officer(name="Sam Okafor", email="sam@example.com", badge_number="M-1", role="manager"),
        "manager2": Officer(name="Kim Ito", email="kim@example.com", badge_number="M-2", role="manager"),
        "o1": Officer(name="Lee Novak", email="lee@example.com", badge_number="O-1", role="officer"),
        "o2": Officer(name="Ari Chen", email="ari@example.com", badge_number="O-2", role="officer"),
        "o3": Officer(name="Jo Patel", email="jo@example.com", badge_number="O-3", role="officer"),
    }
    locations = {
        "gate": Location(name="Main Gate", location_type="entrance", latitude=40.7128, longitude=-74.0060),
        "dock": Location(name="Loading Dock", location_type="area", latitude=40.7131, longitude=-74.0052),
        "roof": Location(name="Roof Access", location_type="building", latitude=40.7125, longitude=-74.0049),
    }
    db.add_all(list(officers.values()) + list(locations.values()))
    db.commit()

    ns = SimpleNamespace()
    for key, officer in officers.items():
        setattr(ns, key, Actor(officer_id=officer.id, role=officer.role, name=officer.name))
    for key, location in locations.items():
        setattr(ns, key, location.id)
    return ns


@pytest.fixture
def client():
    """FastAPI TestClient against the test database."""
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


# ============================================================================
# Helpers
# ============================================================================

def auth_headers(actor: Actor) -> dict:
    token = create_access_token(actor.officer_id, actor.role, actor.name)
    return {"Authorization": f"Bearer {token}"}


def patrol_payload(seed, officers=None, start_in=timedelta(hours=1), duration=timedelta(hours=2), **extra):
    """JSON body for POST /api/patrol with two checkpoints (dock, roof)."""
    start = utcnow() + start_in
    body = {
        "title": "Night perimeter sweep",
        "assignedOfficers": officers if officers is not None else [seed.o1.officer_id],
        "locations": [seed.gate, seed.dock, seed.roof],
        "startTime": start.isoformat(),
        "endTime": (start + duration).isoformat(),
        "checkpoints": [
            {"location": seed.dock},
            {"location": seed.roof},
        ],
    }
    body.update(extra)
    return body


def make_patrol(db, seed, creator=None, officers=None, **extra):
    """Create a scheduled patrol through the lifecycle service."""
    data = PatrolCreate(**patrol_payload(seed, officers=officers, **extra))
    return lifecycle.create_patrol(db, data, creator or seed.manager)


def checkpoint_ids(patrol):
    return [cp.id for cp in patrol.checkpoints]
