"""Read-only access to AI content-generation jobs."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.models.job import AIJob


class JobService:
    """List jobs recorded by the AI webhook, newest first.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_jobs(
        self,
        limit: int = 50,
        integration_id: str | None = None,
        status: str | None = None,
    ) -> list[AIJob]:
        query = select(AIJob)
        if integration_id:
            query = query.where(AIJob.integration_id == integration_id)
        if status:
            query = query.where(AIJob.status == status)
        query = query.order_by(AIJob.created_at.desc(), AIJob.id.desc()).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())
