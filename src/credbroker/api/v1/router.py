"""V1 API router aggregating all sub-routers."""

from fastapi import APIRouter

from credbroker.api.v1.credentials.router import router as credentials_router
from credbroker.api.v1.integrations.router import router as integrations_router
from credbroker.api.v1.jobs.router import router as jobs_router
from credbroker.api.v1.system.router import router as system_router

v1_router = APIRouter()
v1_router.include_router(system_router, prefix="/system", tags=["system"])
v1_router.include_router(credentials_router, prefix="/credentials", tags=["credentials"])
v1_router.include_router(integrations_router, prefix="/integrations", tags=["integrations"])
v1_router.include_router(jobs_router, prefix="/jobs", tags=["jobs"])
