from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from revealcards.db.models.base import Base, BigIntPK


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("num_cards > 0", name="ck_events_num_cards_positive"),
        CheckConstraint("min_value > 0", name="ck_events_min_value_positive"),
        CheckConstraint("max_value >= min_value", name="ck_events_value_range"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    slug: Mapped[str] = mapped_column(String(96), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    num_cards: Mapped[int] = mapped_column(Integer, nullable=False)
    min_value: Mapped[int] = mapped_column(Integer, nullable=False)
    max_value: Mapped[int] = mapped_column(Integer, nullable=False)
    goal_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payout_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
