"""Read-only listing of AI content-generation jobs."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.api.deps import get_caller, get_db
from credbroker.auth import Caller
from credbroker.models.job import AIJob
from credbroker.schemas.jsonapi import JSONAPIListResponse, JSONAPIResource
from credbroker.services.job_service import JobService
from credbroker.services.roles import INTEGRATION_MANAGERS, require_role

router = APIRouter()


def _job_resource(job: AIJob) -> JSONAPIResource:
    return JSONAPIResource(
        type="ai-jobs",
        id=str(job.id),
        attributes={
            "integration_id": job.integration_id,
            "provider": job.provider,
            "payload": job.payload,
            "status": job.status,
            "result": job.result,
            "error_message": job.error_message,
            "created_at": job.created_at.isoformat(),
            "updated_at": job.updated_at.isoformat(),
        },
    )


@router.get("")
async def list_jobs(
    limit: int = Query(default=50, ge=1, le=200),
    integration_id: str | None = Query(default=None),
    status: str | None = Query(default=None, pattern="^(queued|processing|completed|failed)$"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> JSONAPIListResponse:
    """List the most recent jobs, newest first."""
    await require_role(db, caller, INTEGRATION_MANAGERS)
    jobs = await JobService(db).list_jobs(
        limit=limit, integration_id=integration_id, status=status
    )
    return JSONAPIListResponse(
        data=[_job_resource(job) for job in jobs],
        meta={"count": len(jobs)},
    )
