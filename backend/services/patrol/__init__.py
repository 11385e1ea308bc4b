"""
Patrol Services Module

Lifecycle core for scheduled security patrols.
    authorization  - who may perform which operation on a patrol (pure)
    activity_log   - append-only patrol event ledger
    checkpoints    - per-checkpoint completion inside a running patrol
    lifecycle      - patrol state machine: create, start, complete, cancel, edit, delete
    dashboard      - read-only rollups
    concurrency    - optimistic read-modify-write unit around one patrol
    geolocation    - bounded-wait coordinate acquisition

Usage:
    from services.patrol import lifecycle
    patrol = lifecycle.start_patrol(db, patrol_id, actor, coordinates)
"""
