from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ActivityEvent(BaseModel):
    """A user action handed to the engine by the CRM action handlers.

    ``activity_type`` is a plain string: unknown types are
    rejected by the scoring engine, not by validation.
    """

    event_id: str | None = None
    user_id: str = Field(..., min_length=1, max_length=64)
    tenant_id: str = Field(..., min_length=1, max_length=64)
    activity_type: str
    value: int = Field(default=1, ge=0)
    occurred_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ScoreIncrement(BaseModel):
    score_type: str
    time_period: str
    period_start: datetime
    points: int


class ScoringResult(BaseModel):
    user_id: str
    tenant_id: str
    activity_type: str
    direct_points: int = 0
    activity_points: int = 0
    increments: list[ScoreIncrement] = Field(default_factory=list)
    skipped: bool = False
