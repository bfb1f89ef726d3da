from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gamification.db.models.base import Base, TimestampMixin


class Medal(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


MEDALS_BY_RANK = {1: Medal.GOLD, 2: Medal.SILVER, 3: Medal.BRONZE}


class SeasonState(str, Enum):
    ACTIVE = "active"
    ROLLING_OVER = "rolling_over"
    ARCHIVED = "archived"


class SeasonWinner(Base, TimestampMixin):
    """Append-only record of a season's top finishers per category."""

    __tablename__ = "season_winners"

    id: Mapped[int] = mapped_column(primary_key=True)
    season_period: Mapped[str] = mapped_column(String(32), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    score_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    medal: Mapped[Medal] = mapped_column(String(10), nullable=False)

    __table_args__ = (
        Index(
            "idx_season_winners_slot",
            "tenant_id",
            "season_period",
            "category",
            "rank",
            unique=True,
        ),
        Index("idx_season_winners_user", "tenant_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<SeasonWinner {self.season_period} {self.category} #{self.rank} {self.user_id}>"


class SeasonRollover(Base, TimestampMixin):
    """Persisted marker of a tenant's season rollover progress."""

    __tablename__ = "season_rollovers"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    season_period: Mapped[str] = mapped_column(String(32), nullable=False)
    season_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    season_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    state: Mapped[SeasonState] = mapped_column(
        String(20), default=SeasonState.ACTIVE.value, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    winners_archived: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_reset: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("idx_season_rollovers_tenant_period", "tenant_id", "season_period", unique=True),
        Index("idx_season_rollovers_tenant_start", "tenant_id", "season_start"),
    )

    def __repr__(self) -> str:
        return f"<SeasonRollover {self.tenant_id} {self.season_period} state={self.state}>"
