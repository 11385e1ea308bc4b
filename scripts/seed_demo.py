#!/usr/bin/env python3
"""
Demo Environment Seeder for PatrolSheet

Creates the tables, mirrors a small officer roster and location directory
into the database named by PATROL_DATABASE_URL, and prints a bearer token
for each officer so the API can be exercised locally.

Run manually:
    cd /opt/patrolsheet
    PATROL_DATABASE_URL=sqlite:///patrolsheet_demo.db \
    PATROL_JWT_SECRET=dev-secret \
    python3 scripts/seed_demo.py

Tokens are signed with PATROL_JWT_SECRET, so start the API with the same
value or the tokens will be rejected.

What it does:
    1. Creates missing tables
    2. Inserts demo officers (1 admin, 1 manager, 3 officers) unless present
    3. Inserts demo locations unless present
    4. Prints "name  role  token" for each officer
"""

import os
import sys
import argparse
import logging

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "backend"))

from database import SessionLocal, engine, Base
from jwt_auth import create_access_token
from models import Officer, Location

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
log = logging.getLogger("seed_demo")

# ---------------------------------------------------------------------------
# Demo roster / directory
# ---------------------------------------------------------------------------

DEMO_OFFICERS = [
    # name, email, badge, role
    ("Dana Reyes", "dana.reyes@example.com", "A-001", "admin"),
    ("Sam Okafor", "sam.okafor@example.com", "M-014", "manager"),
    ("Lee Novak", "lee.novak@example.com", "O-101", "officer"),
    ("Ari Chen", "ari.chen@example.com", "O-102", "officer"),
    ("Jo Patel", "jo.patel@example.com", "O-103", "officer"),
]

DEMO_LOCATIONS = [
    # name, type, lat, lng
    ("Main Gate", "entrance", 40.7128, -74.0060),
    ("Loading Dock", "area", 40.7131, -74.0052),
    ("Server Room", "building", 40.7125, -74.0049),
    ("North Fence", "perimeter", 40.7140, -74.0061),
    ("Parking Garage", "area", 40.7119, -74.0070),
]


def seed_officers(db):
    officers = []
    for name, email, badge, role in DEMO_OFFICERS:
        officer = db.query(Officer).filter(Officer.email == email).first()
        if not officer:
            officer = Officer(name=name, email=email, badge_number=badge, role=role)
            db.add(officer)
            log.info(f"Added officer {name} ({role})")
        officers.append(officer)
    db.commit()
    return officers


def seed_locations(db):
    for name, location_type, lat, lng in DEMO_LOCATIONS:
        if db.query(Location).filter(Location.name == name).first():
            continue
        db.add(Location(name=name, location_type=location_type, latitude=lat, longitude=lng))
        log.info(f"Added location {name}")
    db.commit()


def main():
    parser = argparse.ArgumentParser(description="Seed PatrolSheet demo officers and locations")
    parser.add_argument("--no-tokens", action="store_true", help="Do not print bearer tokens")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        officers = seed_officers(db)
        seed_locations(db)

        if not args.no_tokens:
            print(f"\n{'='*50}")
            print("Bearer tokens")
            print('='*50)
            for officer in officers:
                token = create_access_token(officer.id, officer.role, officer.name)
                print(f"  {officer.id:>3}  {officer.name:<12} {officer.role:<8} {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
