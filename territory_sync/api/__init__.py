"""API Layer — FastAPI gateway routes and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All endpoints return structured JSON responses

Design Decisions:
    - Thin routes delegate to the RoomSession (ADR: impureim sandwich)
"""
