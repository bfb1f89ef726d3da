from datetime import date, datetime

from sqlalchemy import BigInteger, Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gamification.db.models.base import Base, TimestampMixin


class UserPoints(Base, TimestampMixin):
    """Profile totals: achievement points and daily activity streaks.

    ``points_this_week`` and ``points_this_month`` belong to the periods
    starting at ``week_start`` and ``month_start``; once those are over the
    counters read as zero.
    """

    __tablename__ = "user_points"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_points: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    points_this_week: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    points_this_month: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    week_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    month_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        Index("idx_user_points_user_tenant", "user_id", "tenant_id", unique=True),
        Index("idx_user_points_total", "tenant_id", "total_points"),
    )

    def __repr__(self) -> str:
        return f"<UserPoints user_id={self.user_id} total={self.total_points}>"
