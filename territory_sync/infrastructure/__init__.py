"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure never imports services/ or api/
    - All external calls wrapped with timeout and error mapping into core/errors.py

Design Decisions:
    - Thin resilient wrappers over raw clients (ADR: single responsibility)
"""
