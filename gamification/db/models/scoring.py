from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gamification.db.models.base import Base, TimestampMixin


class ScoringWeight(Base, TimestampMixin):
    """Per-tenant override of the points awarded for an activity type."""

    __tablename__ = "scoring_weights"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    weight: Mapped[int] = mapped_column(Integer, nullable=False)
    activity_weight: Mapped[int | None] = mapped_column(Integer)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("idx_scoring_weights_tenant_type", "tenant_id", "activity_type", unique=True),
    )

    def __repr__(self) -> str:
        return f"<ScoringWeight {self.tenant_id}:{self.activity_type}={self.weight}>"
