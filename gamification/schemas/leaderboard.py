from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    user_id: str
    score_value: int
    rank: int

    model_config = {"from_attributes": True}


class UserRank(BaseModel):
    user_id: str
    score_type: str
    time_period: str
    score_value: int
    rank: int | None
    total_ranked: int
