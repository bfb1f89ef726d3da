from datetime import date

from pydantic import BaseModel


class PointsSummary(BaseModel):
    user_id: str
    tenant_id: str
    total_points: int = 0
    points_this_week: int = 0
    points_this_month: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
