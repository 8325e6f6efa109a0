from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from revealcards.db.models.base import Base, BigIntPK


class UnlockAttempt(Base):
    __tablename__ = "unlock_attempts"
    __table_args__ = (
        UniqueConstraint("email", "event_id", "card_number", name="uq_unlock_attempts_key"),
        CheckConstraint("attempts >= 0", name="ck_unlock_attempts_attempts_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    event_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    card_number: Mapped[int] = mapped_column(Integer, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    window_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
