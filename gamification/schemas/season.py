from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class RolloverStatus(str, Enum):
    COMPLETED = "completed"
    ALREADY_ARCHIVED = "already_archived"


class SeasonWinnerResponse(BaseModel):
    season_period: str
    tenant_id: str
    user_id: str
    category: str
    score_value: int
    rank: int
    medal: str

    model_config = {"from_attributes": True}


class RolloverResult(BaseModel):
    tenant_id: str
    season_period: str
    status: RolloverStatus
    winners: list[SeasonWinnerResponse] = Field(default_factory=list)
    records_reset: int = 0
    completed_at: datetime | None = None
