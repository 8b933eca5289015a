"""Pydantic Schemas — wire validation for the Action API, push channel, and gateway.

Invariants:
    - Schemas validate at system boundary (HTTP responses, push payloads, gateway input)
    - Schemas convert into core/ value types; core never imports pydantic

Design Decisions:
    - Separate from core: schemas are wire contracts, core types are domain values (ADR: DDD boundary)
"""
