from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gamification.db.models.base import Base, JSONType, TimestampMixin


class ActivityType(str, Enum):
    SPIN_COMPLETION = "spin_completion"
    PROPOSAL_SENT = "proposal_sent"
    PROPOSAL_SIGNED = "proposal_signed"
    OPPORTUNITY_CREATED = "opportunity_created"
    TASK_COMPLETED = "task_completed"
    DEAL_CLOSED = "deal_closed"
    AI_USAGE = "ai_usage"


class ScoreType(str, Enum):
    SPIN_COMPLETIONS = "spin_completions"
    PROPOSALS_SENT = "proposals_sent"
    PROPOSALS_SIGNED = "proposals_signed"
    OPPORTUNITIES_CREATED = "opportunities_created"
    TASKS_COMPLETED = "tasks_completed"
    PIPELINE_VALUE = "pipeline_value"
    ACTIVITY_SCORE = "activity_score"


# Direct leaderboard category per activity type. ai_usage only feeds activity_score.
ACTIVITY_SCORE_TYPES: dict[ActivityType, ScoreType | None] = {
    ActivityType.SPIN_COMPLETION: ScoreType.SPIN_COMPLETIONS,
    ActivityType.PROPOSAL_SENT: ScoreType.PROPOSALS_SENT,
    ActivityType.PROPOSAL_SIGNED: ScoreType.PROPOSALS_SIGNED,
    ActivityType.OPPORTUNITY_CREATED: ScoreType.OPPORTUNITIES_CREATED,
    ActivityType.TASK_COMPLETED: ScoreType.TASKS_COMPLETED,
    ActivityType.DEAL_CLOSED: ScoreType.PIPELINE_VALUE,
    ActivityType.AI_USAGE: None,
}

# Activity types whose value is an amount rather than a count.
VALUE_CARRYING_TYPES = frozenset({ActivityType.DEAL_CLOSED})


class ActivityLog(Base, TimestampMixin):
    """Activity history written by the CRM action handlers.

    The engine reads it to evaluate count-based achievement criteria.
    """

    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str | None] = mapped_column(String(255))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_type: Mapped[ActivityType] = mapped_column(String(50), nullable=False)
    value: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    extra_data: Mapped[dict | None] = mapped_column("metadata", JSONType)

    __table_args__ = (
        Index("idx_activity_log_event_id", "event_id", unique=True),
        Index("idx_activity_log_user_type_time", "user_id", "activity_type", "occurred_at"),
        Index("idx_activity_log_tenant", "tenant_id"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog {self.activity_type} by user_id={self.user_id}>"
