"""Shared FastAPI dependencies for database sessions, the vault, and caller identity."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.auth import Caller, verify_token
from credbroker.config import Settings, get_settings
from credbroker.errors import Unauthorized
from credbroker.services.credential_broker import CredentialBroker
from credbroker.services.integration_tester import IntegrationTester
from credbroker.services.vault import Vault

# auto_error=False so a missing header reaches get_caller and becomes the
# broker's own Unauthorized payload instead of FastAPI's 403.
bearer_scheme = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session from the app-level session factory.

    The session factory is stored on ``request.app.state.session_factory``
    by the application lifespan. The session auto-closes when the request ends.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def get_vault(request: Request) -> Vault:
    """Return the Vault stored on app state by the lifespan."""
    return request.app.state.vault


async def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Caller:
    """Verify the bearer token and return the caller's identity.

    Only identity comes from the token. Roles are resolved per operation.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized()
    return verify_token(credentials.credentials, settings)


async def get_credential_broker(
    db: AsyncSession = Depends(get_db),
    vault: Vault = Depends(get_vault),
) -> CredentialBroker:
    """Provide a per-request CredentialBroker."""
    return CredentialBroker(db, vault)


async def get_integration_tester(
    request: Request,
    vault: Vault = Depends(get_vault),
    settings: Settings = Depends(get_settings),
) -> IntegrationTester:
    """Provide an IntegrationTester.

    ``app.state.probe_transport`` lets tests route probes to a mock transport.
    """
    return IntegrationTester(
        vault,
        timeout=settings.integration_test_timeout,
        transport=getattr(request.app.state, "probe_transport", None),
    )
