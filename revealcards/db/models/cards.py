from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from revealcards.db.models.base import Base, BigIntPK


class Card(Base):
    __tablename__ = "cards"
    __table_args__ = (
        UniqueConstraint("event_id", "card_number", name="uq_cards_event_card_number"),
        CheckConstraint("status IN ('AVAILABLE','RESERVED','REVEALED')", name="ck_cards_status"),
        CheckConstraint("card_number > 0", name="ck_cards_card_number_positive"),
        CheckConstraint("value > 0", name="ck_cards_value_positive"),
        CheckConstraint(
            "(status = 'AVAILABLE' AND guest_email IS NULL AND reserved_until IS NULL) "
            "OR status <> 'AVAILABLE'",
            name="ck_cards_available_has_no_guest",
        ),
        CheckConstraint(
            "(status = 'RESERVED' AND unlock_code IS NOT NULL AND guest_email IS NOT NULL "
            "AND reserved_until IS NOT NULL) OR (status <> 'RESERVED' AND unlock_code IS NULL)",
            name="ck_cards_reservation_fields",
        ),
        CheckConstraint(
            "(status = 'REVEALED' AND revealed_at IS NOT NULL AND guest_email IS NOT NULL) "
            "OR (status <> 'REVEALED' AND revealed_at IS NULL)",
            name="ck_cards_reveal_fields",
        ),
        Index("idx_cards_event_status", "event_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    card_number: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'AVAILABLE'"))
    unlock_code: Mapped[str | None] = mapped_column(String(12), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    guest_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reserved_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revealed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
