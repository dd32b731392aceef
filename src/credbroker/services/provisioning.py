"""Two-phase integration creation with compensation.

Inserting the metadata row and storing credentials are separate writes
against separate stores, so they cannot share a transaction. They run as a
saga instead: each step may declare a compensating action, and when a later
step fails the completed steps are compensated in reverse order before the
original error propagates.

    step               compensation
    ----------------   -------------------------------
    insert_metadata    delete the inserted row
    store_credentials  none (the broker is all-or-nothing)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.auth import Caller
from credbroker.models.integration import Integration
from credbroker.services.credential_broker import CredentialBroker
from credbroker.services.integration_service import IntegrationService
from credbroker.services.roles import ADMIN_ONLY, require_role
from credbroker.services.vault import Vault

logger = logging.getLogger(__name__)


@dataclass
class SagaStep:
    """One forward action plus its optional compensating action."""

    name: str
    action: Callable[[], Awaitable[None]]
    compensation: Callable[[], Awaitable[None]] | None = None


async def run_saga(steps: list[SagaStep]) -> list[str]:
    """Run steps in order, compensating completed ones if a step fails.

    A compensation that itself fails is logged and skipped so it never
    masks the error that triggered the rollback.

    Returns:
        Names of the steps that ran.
    """
    completed: list[SagaStep] = []
    for step in steps:
        try:
            await step.action()
        except Exception:
            logger.warning("Step '%s' failed; compensating %d step(s)", step.name, len(completed))
            for done in reversed(completed):
                if done.compensation is None:
                    continue
                try:
                    await done.compensation()
                except Exception:
                    logger.exception("Compensation for step '%s' failed", done.name)
                else:
                    logger.info("Compensated step '%s'", done.name)
            raise
        completed.append(step)
    return [step.name for step in completed]


class IntegrationProvisioner:
    """Creates integrations and their vaulted credentials as one logical unit.

    Args:
        db: Async session for the integration and profile tables.
        vault: Vault holding the encrypted credentials.
    """

    def __init__(self, db: AsyncSession, vault: Vault) -> None:
        self.db = db
        self.integrations = IntegrationService(db)
        self.broker = CredentialBroker(db, vault)

    async def create(
        self,
        caller: Caller,
        *,
        name: str,
        integration_type: str,
        endpoint_url: str | None = None,
        config: dict[str, Any] | None = None,
        enabled: bool = True,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        integration_id: str | None = None,
    ) -> Integration:
        """Insert the metadata row and, if supplied, vault the credentials.

        If credential storage fails the inserted row is deleted before the
        broker's error is re-raised, so no credential-less integration that
        expected vaulted credentials survives.

        Raises:
            Forbidden: Caller is not an admin.
            BrokerError: Any failure from the credential broker.
        """
        await require_role(self.db, caller, ADMIN_ONLY)

        created: dict[str, Integration] = {}

        async def insert_metadata() -> None:
            created["integration"] = await self.integrations.create_integration(
                name=name,
                integration_type=integration_type,
                endpoint_url=endpoint_url,
                config=config,
                enabled=enabled,
                created_by=caller.user_id,
                integration_id=integration_id,
            )

        async def remove_metadata() -> None:
            await self.integrations.delete_integration(created["integration"].id)

        async def store_credentials() -> None:
            await self.broker.store_credentials(
                caller,
                created["integration"].id,
                api_key=api_key,
                webhook_secret=webhook_secret,
            )

        steps = [SagaStep("insert_metadata", insert_metadata, remove_metadata)]
        if api_key or webhook_secret:
            steps.append(SagaStep("store_credentials", store_credentials))

        await run_saga(steps)

        integration = created["integration"]
        await self.db.refresh(integration)
        return integration
