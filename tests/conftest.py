from __future__ import annotations

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient

from credbroker.app import create_app
from credbroker.auth import Caller, create_access_token
from credbroker.config import Settings, get_settings
from credbroker.database import close_db, create_schema, get_session_factory, init_db
from credbroker.models.integration import Integration
from credbroker.models.profile import Profile, Role
from credbroker.services.vault import Vault, load_cipher
from tests.factories import ADMIN_ID, EDITOR_ID, MEMBER_ID, SQLITE_URL, FlakyCipher


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=SQLITE_URL,
        vault_encryption_key=Fernet.generate_key().decode(),
        jwt_secret="test-jwt-secret",
        jwt_audience="authenticated",
    )


@pytest.fixture
def cipher(settings: Settings) -> Fernet:
    return load_cipher(settings.vault_encryption_key)


@pytest_asyncio.fixture
async def db_engine():
    engine = await init_db(SQLITE_URL)
    await create_schema(engine)
    yield engine
    await close_db(engine)


@pytest_asyncio.fixture
async def vault_engine():
    # Separate in-memory database: the vault never shares a transaction
    # with the integration records.
    engine = await init_db(SQLITE_URL)
    await create_schema(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory(db_engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def vault(vault_engine, cipher) -> Vault:
    return Vault(get_session_factory(vault_engine), cipher)


@pytest.fixture
def flaky_vault(vault_engine, cipher) -> Vault:
    """Vault whose second write in a batch fails."""
    return Vault(get_session_factory(vault_engine), FlakyCipher(cipher, fail_on_call=2))


@pytest_asyncio.fixture(autouse=True)
async def profiles(session_factory):
    async with session_factory() as session:
        session.add_all(
            [
                Profile(user_id=ADMIN_ID, username="admin", role=Role.ADMIN.value),
                Profile(user_id=EDITOR_ID, username="editor", role=Role.EDITOR.value),
                Profile(user_id=MEMBER_ID, username="member", role=Role.USER.value),
            ]
        )
        await session.commit()


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id=ADMIN_ID)


@pytest.fixture
def editor() -> Caller:
    return Caller(user_id=EDITOR_ID)


@pytest.fixture
def member() -> Caller:
    return Caller(user_id=MEMBER_ID)


@pytest.fixture
def make_integration(session_factory):
    """Insert an integration row directly, bypassing the API."""

    async def _make(integration_id: str = "int-1", **overrides) -> Integration:
        values = {
            "name": "Content generator",
            "integration_type": "openai",
            "endpoint_url": "https://api.example.test/v1",
            "config": {"model": "gpt-4o-mini"},
            "created_by": ADMIN_ID,
        }
        values.update(overrides)
        async with session_factory() as session:
            integration = Integration(id=integration_id, **values)
            session.add(integration)
            await session.commit()
            await session.refresh(integration)
        return integration

    return _make


@pytest.fixture
def load_integration(session_factory):
    """Read an integration row in a fresh session."""

    async def _load(integration_id: str) -> Integration | None:
        async with session_factory() as session:
            return await session.get(Integration, integration_id)

    return _load


@pytest.fixture
def app(settings, session_factory, vault):
    application = create_app()
    application.state.session_factory = session_factory
    application.state.vault = vault
    application.dependency_overrides[get_settings] = lambda: settings
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def auth_headers(settings):
    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, settings)}"}

    return _headers
