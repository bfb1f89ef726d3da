from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamification.db.models.base import Base, JSONType, TimestampMixin


class AchievementDefinition(Base, TimestampMixin):
    """An unlockable achievement with a ``{"type": ..., "target": ...}`` criterion."""

    __tablename__ = "achievement_definitions"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(64))
    badge_color: Mapped[str | None] = mapped_column(String(32))
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    criteria: Mapped[dict] = mapped_column(JSONType, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user_achievements = relationship("UserAchievement", back_populates="achievement")

    @property
    def criterion_type(self) -> str | None:
        return (self.criteria or {}).get("type")

    @property
    def criterion_target(self):
        return (self.criteria or {}).get("target")

    def __repr__(self) -> str:
        return f"<AchievementDefinition {self.code}>"


class UserAchievement(Base, TimestampMixin):
    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    achievement_id: Mapped[int] = mapped_column(
        ForeignKey("achievement_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    achievement = relationship("AchievementDefinition", back_populates="user_achievements")

    __table_args__ = (
        Index("idx_user_achievements_user_achievement", "user_id", "achievement_id", unique=True),
        Index("idx_user_achievements_tenant_user", "tenant_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<UserAchievement user_id={self.user_id} achievement_id={self.achievement_id}>"
