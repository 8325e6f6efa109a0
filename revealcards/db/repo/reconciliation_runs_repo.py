from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.db.models.reconciliation_runs import ReconciliationRun


class ReconciliationRunsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        trigger: str,
        started_at: datetime,
        finished_at: datetime | None,
        status: str,
        payments_examined: int,
        payments_updated: int,
        cards_updated: int,
        error_count: int,
    ) -> ReconciliationRun:
        run = ReconciliationRun(
            trigger=trigger,
            started_at=started_at,
            finished_at=finished_at,
            status=status,
            payments_examined=payments_examined,
            payments_updated=payments_updated,
            cards_updated=cards_updated,
            error_count=error_count,
        )
        session.add(run)
        await session.flush()
        return run

