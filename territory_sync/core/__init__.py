"""Core Layer — pure domain logic, no IO, no async, no network.

Invariants:
    - No module in core/ imports from services/, api/, or infrastructure/
    - The BoardStore is the only mutable structure; everything it hands out is immutable

Design Decisions:
    - Functional core separated from imperative shell (ADR: impureim sandwich)
"""
