"""Action Schemas — gateway request/response models for player actions.

Invariants:
    - CoordinatesBody: x, y non-negative integers (the board origin is (0, 0))
    - ActionResponse mirrors ActionResult.to_dict(): kind, status, optional error

Design Decisions:
    - Literal status over enum import: the response contract stays readable in OpenAPI
"""

from typing import Literal

from pydantic import BaseModel, Field


class CoordinatesBody(BaseModel):
    """Target cell for capture/defend."""
    x: int = Field(ge=0)
    y: int = Field(ge=0)

    @property
    def coords(self) -> tuple[int, int]:
        return (self.x, self.y)


class ActionErrorBody(BaseModel):
    code: str
    message: str
    category: str


class ActionResponse(BaseModel):
    """Terminal outcome of one action request."""
    kind: Literal["capture", "defend", "reset"]
    status: Literal["applied", "skipped", "failed"]
    error: ActionErrorBody | None = None
