from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.db.models.payments import Payment


class PaymentsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, payment: Payment) -> Payment:
        session.add(payment)
        await session.flush()
        return payment

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, payment_id: int) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_session_id(session: AsyncSession, stripe_session_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.stripe_session_id == stripe_session_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_pending_since(
        session: AsyncSession,
        *,
        since_utc: datetime,
        limit: int = 200,
    ) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(
                Payment.status == "PENDING",
                Payment.stripe_session_id.is_not(None),
                Payment.created_at >= since_utc,
            )
            .order_by(Payment.created_at.asc(), Payment.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def has_paid_payment_for_card(
        session: AsyncSession,
        *,
        card_id: int,
    ) -> bool:
        stmt = select(func.count(Payment.id)).where(
            Payment.card_id == card_id,
            Payment.status == "PAID",
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0) > 0

    @staticmethod
    async def mark_paid(session: AsyncSession, *, payment_id: int, now_utc: datetime) -> bool:
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == "PENDING")
            .values(status="PAID", paid_at=now_utc)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0) == 1
