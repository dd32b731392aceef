"""System router providing health check and operational endpoints."""

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from credbroker.schemas.jsonapi import JSONAPIResource, JSONAPISingleResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=JSONAPISingleResponse)
async def health_check(request: Request) -> JSONAPISingleResponse:
    """Return system health including database and vault connectivity.

    Reports ``healthy`` when both stores answer and ``degraded`` otherwise.
    """
    db_ok = False
    try:
        session_factory = request.app.state.session_factory
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Database health check failed", exc_info=True)

    vault_ok = False
    try:
        await request.app.state.vault.ping()
        vault_ok = True
    except Exception:
        logger.warning("Vault health check failed", exc_info=True)

    status = "healthy" if (db_ok and vault_ok) else "degraded"

    return JSONAPISingleResponse(
        data=JSONAPIResource(
            type="system-health",
            id="current",
            attributes={
                "status": status,
                "database": "connected" if db_ok else "disconnected",
                "vault": "connected" if vault_ok else "disconnected",
            },
        )
    )
