from datetime import timedelta

from credbroker.auth import create_access_token
from credbroker.database import close_db, get_session_factory, init_db
from credbroker.services.credential_broker import CredentialBroker
from credbroker.services.vault import Vault, secret_name
from tests.factories import ADMIN_ID, EDITOR_ID, MEMBER_ID, SQLITE_URL, STRANGER_ID

URL = "/api/v1/credentials"


async def test_admin_stores_api_key(client, auth_headers, make_integration, load_integration, vault):
    await make_integration("int-1", api_key="legacy-plaintext")

    resp = await client.post(
        URL,
        json={"action": "store", "integrationId": "int-1", "apiKey": "sk-test-123"},
        headers=auth_headers(ADMIN_ID),
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Credentials stored securely"}
    assert "sk-test-123" not in resp.text

    integration = await load_integration("int-1")
    assert integration.credentials_in_vault is True
    assert integration.api_key is None
    assert await vault.read_secret(secret_name("int-1", "api_key")) == "sk-test-123"

    detail = await client.get("/api/v1/integrations/int-1", headers=auth_headers(ADMIN_ID))
    attrs = detail.json()["data"]["attributes"]
    assert attrs["credentials_in_vault"] is True
    assert "api_key" not in attrs


async def test_non_admin_store_is_forbidden(client, auth_headers, make_integration, load_integration, vault):
    await make_integration("int-1")

    resp = await client.post(
        URL,
        json={"action": "store", "integrationId": "int-1", "apiKey": "sk-test-123"},
        headers=auth_headers(MEMBER_ID),
    )

    assert resp.status_code == 403
    body = resp.json()
    assert body["success"] is False
    assert body["category"] == "Forbidden"
    assert (await load_integration("int-1")).credentials_in_vault is False
    assert not await vault.has_secret(secret_name("int-1", "api_key"))


async def test_store_for_missing_integration(client, auth_headers):
    resp = await client.post(
        URL,
        json={"action": "store", "integrationId": "int-missing", "apiKey": "sk"},
        headers=auth_headers(ADMIN_ID),
    )

    assert resp.status_code == 404
    assert resp.json()["category"] == "IntegrationNotFound"


async def test_missing_token_is_unauthorized(client, make_integration):
    await make_integration("int-1")

    resp = await client.post(URL, json={"action": "store", "integrationId": "int-1", "apiKey": "sk"})

    assert resp.status_code == 401
    assert resp.json()["category"] == "Unauthorized"
    assert resp.headers["www-authenticate"] == "Bearer"


async def test_expired_token_is_unauthorized(client, settings):
    token = create_access_token(ADMIN_ID, settings, expires_delta=timedelta(seconds=-5))

    resp = await client.post(
        URL,
        json={"action": "delete", "integrationId": "int-1"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert resp.status_code == 401


async def test_identity_without_profile_is_forbidden(client, auth_headers, make_integration):
    await make_integration("int-1")

    resp = await client.post(
        URL,
        json={"action": "delete", "integrationId": "int-1"},
        headers=auth_headers(STRANGER_ID),
    )

    assert resp.status_code == 403


async def test_unknown_action_is_invalid(client, auth_headers):
    resp = await client.post(
        URL, json={"action": "rotate", "integrationId": "int-1"}, headers=auth_headers(ADMIN_ID)
    )

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid action", "category": "InvalidRequest"}


async def test_validation_errors_do_not_echo_secrets(client, auth_headers):
    resp = await client.post(
        URL, json={"action": "store", "apiKey": "sk-very-secret"}, headers=auth_headers(ADMIN_ID)
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["category"] == "InvalidRequest"
    assert "integrationId" in body["error"]
    assert "sk-very-secret" not in resp.text


async def test_malformed_fields_are_invalid_requests(client, auth_headers):
    too_long = await client.post(
        URL, json={"action": "delete", "integrationId": "x" * 37}, headers=auth_headers(ADMIN_ID)
    )
    wrong_type = await client.post(
        URL,
        json={"action": "store", "integrationId": "int-1", "apiKey": 12345},
        headers=auth_headers(ADMIN_ID),
    )

    for resp in (too_long, wrong_type):
        assert resp.status_code == 400
        assert resp.json()["category"] == "InvalidRequest"
    assert "12345" not in wrong_type.text


async def test_vault_failure_reports_vault_write_failed(
    app, client, auth_headers, make_integration, load_integration, flaky_vault
):
    app.state.vault = flaky_vault
    await make_integration("int-1", integration_type="n8n")

    resp = await client.post(
        URL,
        json={
            "action": "store",
            "integrationId": "int-1",
            "apiKey": "sk-test-123",
            "webhookSecret": "whsec-456",
        },
        headers=auth_headers(ADMIN_ID),
    )

    assert resp.status_code == 502
    assert resp.json()["category"] == "VaultWriteFailed"
    assert "whsec-456" not in resp.text
    assert (await load_integration("int-1")).credentials_in_vault is False


async def test_delete_then_delete_again(client, auth_headers, make_integration, load_integration):
    await make_integration("int-1")
    payload = {"action": "delete", "integrationId": "int-1"}

    first = await client.post(URL, json=payload, headers=auth_headers(ADMIN_ID))
    second = await client.post(URL, json=payload, headers=auth_headers(ADMIN_ID))

    assert first.status_code == 200
    assert first.json() == {"success": True, "message": "Integration and credentials deleted"}
    assert second.status_code == 404
    assert second.json()["category"] == "IntegrationNotFound"
    assert await load_integration("int-1") is None


async def test_editor_cannot_delete(client, auth_headers, make_integration):
    await make_integration("int-1")

    resp = await client.post(
        URL, json={"action": "delete", "integrationId": "int-1"}, headers=auth_headers(EDITOR_ID)
    )

    assert resp.status_code == 403


async def test_unexpected_failure_is_generic_internal_error(
    client, auth_headers, make_integration, monkeypatch
):
    await make_integration("int-1")

    async def explode(self, caller, integration_id, api_key=None, webhook_secret=None):
        raise RuntimeError("db password=hunter2")

    monkeypatch.setattr(CredentialBroker, "store_credentials", explode)

    resp = await client.post(
        URL,
        json={"action": "store", "integrationId": "int-1", "apiKey": "sk-test-123"},
        headers=auth_headers(ADMIN_ID),
    )

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Internal error", "category": "Internal"}
    assert "hunter2" not in resp.text
    assert "sk-test-123" not in resp.text


async def test_vault_delete_failure_keeps_integration(
    app, client, auth_headers, make_integration, load_integration, cipher
):
    await make_integration("int-1", credentials_in_vault=True)
    # A vault database without its table: every delete fails at the database.
    broken_engine = await init_db(SQLITE_URL)
    app.state.vault = Vault(get_session_factory(broken_engine), cipher)
    try:
        resp = await client.post(
            URL,
            json={"action": "delete", "integrationId": "int-1"},
            headers=auth_headers(ADMIN_ID),
        )
    finally:
        await close_db(broken_engine)

    assert resp.status_code == 502
    assert resp.json()["category"] == "VaultWriteFailed"
    assert await load_integration("int-1") is not None
