from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gamification.core.periods import TimePeriod
from gamification.db.models.activity import ScoreType
from gamification.db.models.base import Base, JSONType, TimestampMixin


class ScoreRecord(Base, TimestampMixin):
    """Aggregate score of one user for one category over one time period.

    ``score_value`` only ever grows through atomic increments, except for the
    season rollover which zeroes week/month rows of the finished season.
    """

    __tablename__ = "score_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    score_type: Mapped[ScoreType] = mapped_column(String(50), nullable=False)
    time_period: Mapped[TimePeriod] = mapped_column(String(20), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    score_value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    extra_data: Mapped[dict | None] = mapped_column("metadata", JSONType)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "tenant_id",
            "score_type",
            "time_period",
            "period_start",
            name="uq_score_records_key",
        ),
        Index("idx_score_records_board", "tenant_id", "time_period", "period_start", "score_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScoreRecord {self.score_type}/{self.time_period} "
            f"user_id={self.user_id} value={self.score_value}>"
        )
