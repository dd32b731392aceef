import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.auth import Caller
from credbroker.errors import Forbidden, Internal, IntegrationNotFound, InvalidRequest, VaultWriteFailed
from credbroker.services.credential_broker import CredentialBroker
from credbroker.services.vault import secret_name

API_KEY_NAME = secret_name("int-1", "api_key")
WEBHOOK_NAME = secret_name("int-1", "webhook_secret")


async def test_store_marks_vaulted_and_clears_plaintext(
    db, vault, admin, make_integration, load_integration
):
    await make_integration("int-1", api_key="legacy-plaintext")
    broker = CredentialBroker(db, vault)

    result = await broker.store_credentials(admin, "int-1", api_key="sk-test-123")

    assert result.success is True
    assert "sk-test-123" not in result.message
    integration = await load_integration("int-1")
    assert integration.credentials_in_vault is True
    assert integration.api_key is None
    assert integration.webhook_secret is None
    assert await vault.read_secret(API_KEY_NAME) == "sk-test-123"


async def test_store_both_secrets(db, vault, admin, make_integration, load_integration):
    await make_integration("int-1", integration_type="n8n")

    await CredentialBroker(db, vault).store_credentials(
        admin, "int-1", api_key="sk-1", webhook_secret="whsec-1"
    )

    assert await vault.read_secret(API_KEY_NAME) == "sk-1"
    assert await vault.read_secret(WEBHOOK_NAME) == "whsec-1"
    assert (await load_integration("int-1")).credentials_in_vault is True


@pytest.mark.parametrize("user", ["editor", "member"])
async def test_non_admin_is_forbidden_and_nothing_changes(
    request, db, vault, user, make_integration, load_integration
):
    caller = request.getfixturevalue(user)
    await make_integration("int-1", api_key="legacy-plaintext")

    with pytest.raises(Forbidden):
        await CredentialBroker(db, vault).store_credentials(caller, "int-1", api_key="sk-test-123")

    integration = await load_integration("int-1")
    assert integration.credentials_in_vault is False
    assert integration.api_key == "legacy-plaintext"
    assert not await vault.has_secret(API_KEY_NAME)


async def test_caller_without_profile_is_forbidden(db, vault, make_integration):
    await make_integration("int-1")

    with pytest.raises(Forbidden):
        await CredentialBroker(db, vault).store_credentials(
            Caller(user_id="nobody"), "int-1", api_key="sk"
        )


async def test_store_for_missing_integration(db, vault, admin):
    with pytest.raises(IntegrationNotFound):
        await CredentialBroker(db, vault).store_credentials(admin, "int-missing", api_key="sk")

    assert not await vault.has_secret(secret_name("int-missing", "api_key"))


async def test_store_without_secrets_is_rejected(db, vault, admin, make_integration, load_integration):
    await make_integration("int-1")

    with pytest.raises(InvalidRequest):
        await CredentialBroker(db, vault).store_credentials(admin, "int-1", api_key="", webhook_secret=None)

    assert (await load_integration("int-1")).credentials_in_vault is False


async def test_webhook_write_failure_after_api_key_is_not_partial(
    db, flaky_vault, admin, make_integration, load_integration
):
    await make_integration("int-1", integration_type="custom")

    with pytest.raises(VaultWriteFailed):
        await CredentialBroker(db, flaky_vault).store_credentials(
            admin, "int-1", api_key="sk-test-123", webhook_secret="whsec-456"
        )

    assert (await load_integration("int-1")).credentials_in_vault is False
    assert not await flaky_vault.has_secret(API_KEY_NAME)
    assert not await flaky_vault.has_secret(WEBHOOK_NAME)


async def test_record_update_failure_discards_new_vault_entries(
    db, vault, admin, make_integration, load_integration, monkeypatch
):
    await make_integration("int-1")

    async def failing_commit(self):
        raise OperationalError("UPDATE integrations", {}, Exception("connection lost"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)

    with pytest.raises(Internal) as excinfo:
        await CredentialBroker(db, vault).store_credentials(admin, "int-1", api_key="sk-test-123")

    assert excinfo.value.message == "Internal error"
    assert not await vault.has_secret(API_KEY_NAME)
    assert (await load_integration("int-1")).credentials_in_vault is False


async def test_delete_removes_record_and_vault_entries(
    db, vault, admin, make_integration, load_integration
):
    await make_integration("int-1")
    broker = CredentialBroker(db, vault)
    await broker.store_credentials(admin, "int-1", api_key="sk", webhook_secret="wh")

    result = await broker.delete_credentials(admin, "int-1")

    assert result.success is True
    assert await load_integration("int-1") is None
    assert not await vault.has_secret(API_KEY_NAME)
    assert not await vault.has_secret(WEBHOOK_NAME)


async def test_delete_twice_reports_not_found(db, vault, admin, make_integration):
    await make_integration("int-1")
    broker = CredentialBroker(db, vault)

    await broker.delete_credentials(admin, "int-1")
    with pytest.raises(IntegrationNotFound):
        await broker.delete_credentials(admin, "int-1")


async def test_delete_by_editor_is_forbidden(db, vault, editor, make_integration, load_integration):
    await make_integration("int-1")

    with pytest.raises(Forbidden):
        await CredentialBroker(db, vault).delete_credentials(editor, "int-1")

    assert await load_integration("int-1") is not None
