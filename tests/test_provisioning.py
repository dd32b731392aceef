import pytest

from credbroker.errors import Forbidden, VaultWriteFailed
from credbroker.models.integration import Integration
from credbroker.services.provisioning import IntegrationProvisioner, SagaStep, run_saga
from credbroker.services.vault import secret_name


async def test_run_saga_compensates_completed_steps_in_reverse():
    calls = []

    async def record(name):
        calls.append(name)

    async def fail():
        raise RuntimeError("step three failed")

    steps = [
        SagaStep("one", lambda: record("one"), lambda: record("undo-one")),
        SagaStep("two", lambda: record("two"), lambda: record("undo-two")),
        SagaStep("three", fail, lambda: record("undo-three")),
    ]

    with pytest.raises(RuntimeError, match="step three failed"):
        await run_saga(steps)

    assert calls == ["one", "two", "undo-two", "undo-one"]


async def test_failing_compensation_does_not_mask_original_error():
    calls = []

    async def broken_undo():
        raise ConnectionError("cannot reach database")

    async def record(name):
        calls.append(name)

    async def fail():
        raise ValueError("original")

    steps = [
        SagaStep("one", lambda: record("one"), lambda: record("undo-one")),
        SagaStep("two", lambda: record("two"), broken_undo),
        SagaStep("three", fail),
    ]

    with pytest.raises(ValueError, match="original"):
        await run_saga(steps)

    assert calls == ["one", "two", "undo-one"]


async def test_run_saga_returns_completed_step_names():
    async def noop():
        return None

    assert await run_saga([SagaStep("a", noop), SagaStep("b", noop)]) == ["a", "b"]


async def test_create_without_credentials_inserts_metadata_only(db, vault, admin):
    integration = await IntegrationProvisioner(db, vault).create(
        admin, name="n8n flow", integration_type="n8n", endpoint_url="https://n8n.test/hook"
    )

    assert integration.credentials_in_vault is False
    assert integration.created_by == admin.user_id
    assert not await vault.has_secret(secret_name(integration.id, "webhook_secret"))


async def test_create_with_credentials_vaults_them(db, vault, admin, load_integration):
    integration = await IntegrationProvisioner(db, vault).create(
        admin,
        name="OpenAI",
        integration_type="openai",
        endpoint_url="https://api.openai.test/v1",
        api_key="sk-test-123",
    )

    stored = await load_integration(integration.id)
    assert stored.credentials_in_vault is True
    assert stored.api_key is None
    assert await vault.read_secret(secret_name(integration.id, "api_key")) == "sk-test-123"


async def test_vault_failure_removes_inserted_row(db, flaky_vault, admin, session_factory):
    with pytest.raises(VaultWriteFailed):
        await IntegrationProvisioner(db, flaky_vault).create(
            admin,
            name="Custom hook",
            integration_type="custom",
            api_key="sk-test-123",
            webhook_secret="whsec-456",
            integration_id="int-rollback",
        )

    async with session_factory() as session:
        assert await session.get(Integration, "int-rollback") is None
    assert not await flaky_vault.has_secret(secret_name("int-rollback", "api_key"))


async def test_non_admin_cannot_create(db, vault, editor, session_factory):
    with pytest.raises(Forbidden):
        await IntegrationProvisioner(db, vault).create(
            editor, name="x", integration_type="openai", api_key="sk", integration_id="int-x"
        )

    async with session_factory() as session:
        assert await session.get(Integration, "int-x") is None
