from pydantic import BaseModel, Field


class ActivityWeight(BaseModel):
    """Effective weight of one activity type for one tenant."""

    activity_type: str
    weight: int = Field(..., gt=0)
    activity_weight: int = Field(..., gt=0)
    is_enabled: bool = True
