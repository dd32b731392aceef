"""FastAPI application factory with async lifespan for the database and vault."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from credbroker.api.v1.credentials.router import manage_credentials
from credbroker.api.v1.router import v1_router
from credbroker.config import get_settings
from credbroker.database import close_db, get_session_factory, init_db
from credbroker.errors import BrokerError, InvalidRequest, Unauthorized
from credbroker.services.vault import Vault, load_cipher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    On startup: create the application database engine and session factory,
    then a separate engine for the vault (which may point at the same
    database) and the Vault itself.
    On shutdown: dispose of both engines.
    """
    settings = get_settings()

    # Startup -- application database
    engine = await init_db(settings.database_url)
    app.state.db_engine = engine
    app.state.session_factory = get_session_factory(engine)

    # Startup -- vault (own engine so vault writes never share a transaction
    # with integration record updates)
    vault_engine = await init_db(settings.effective_vault_database_url)
    app.state.vault_engine = vault_engine
    app.state.vault = Vault(
        session_factory=get_session_factory(vault_engine),
        cipher=load_cipher(settings.vault_encryption_key),
    )

    yield

    await close_db(vault_engine)
    await close_db(engine)


async def handle_broker_error(_request: Request, exc: BrokerError) -> JSONResponse:
    """Render a BrokerError as ``{"success": false, "error", "category"}``."""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_payload(), headers=headers
    )


def _field_path(loc) -> str:
    return ".".join(str(part) for part in loc if part != "body") or "body"


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Validation failure response that never echoes submitted values.

    The credential endpoint reports it as a 400 ``InvalidRequest`` in the
    broker error shape; every other route gets FastAPI's usual 422.
    """
    errors = [
        {key: value for key, value in error.items() if key not in ("input", "ctx")}
        for error in exc.errors()
    ]
    if request.scope.get("endpoint") is manage_credentials:
        problems = "; ".join(
            f"{_field_path(error['loc'])}: {error['msg']}" for error in errors
        )
        invalid = InvalidRequest(f"Invalid request: {problems}")
        return JSONResponse(status_code=invalid.status_code, content=invalid.to_payload())
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    This is the app factory. Uvicorn calls it with the --factory flag:
        uvicorn credbroker.app:create_app --factory
    """
    settings = get_settings()

    app = FastAPI(
        title="Credential Broker",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
    )

    app.add_exception_handler(BrokerError, handle_broker_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(v1_router, prefix=settings.api_prefix)

    return app
