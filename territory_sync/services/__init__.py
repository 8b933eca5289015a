"""Service Layer — the synchronization engine proper.

Invariants:
    - Services receive a SessionContext at construction (no ambient session state)
    - Only MessageDispatcher and ActionCoordinator write to the BoardStore

Design Decisions:
    - One class per component: connection, dispatch, coordination, room wiring
"""
