"""Credential Broker: the only path by which integration secrets are stored or removed.

Every operation re-resolves the caller's role, touches the vault, then
updates the integration record. Secrets are never returned to callers and
never logged; only integration ids and vault names are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.auth import Caller
from credbroker.errors import BrokerError, Internal, IntegrationNotFound, InvalidRequest
from credbroker.models.integration import Integration
from credbroker.services.roles import ADMIN_ONLY, require_role
from credbroker.services.vault import (
    PURPOSE_API_KEY,
    PURPOSE_WEBHOOK_SECRET,
    Vault,
    integration_secret_names,
    secret_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrokerResult:
    """Acknowledgement returned by a successful broker operation."""

    message: str
    success: bool = True


class CredentialBroker:
    """Privileged credential operations for integrations.

    Instances are cheap and built per request; they hold no state between
    calls beyond the session and vault they were given.

    Args:
        db: Async session for the integration and profile tables.
        vault: Vault holding the encrypted credentials.
    """

    def __init__(self, db: AsyncSession, vault: Vault) -> None:
        self.db = db
        self.vault = vault

    async def store_credentials(
        self,
        caller: Caller,
        integration_id: str,
        api_key: str | None = None,
        webhook_secret: str | None = None,
    ) -> BrokerResult:
        """Move an integration's credentials into the vault.

        All supplied secrets are written in one vault batch. Only after the
        batch succeeds is the record flagged ``credentials_in_vault`` and
        its plaintext columns cleared. If that final update fails, freshly
        created vault entries are removed again.

        Raises:
            Forbidden: Caller is not an admin.
            IntegrationNotFound: No integration with this id.
            InvalidRequest: Neither secret was supplied.
            VaultWriteFailed: The vault rejected the batch.
            Internal: The record update failed.
        """
        await require_role(self.db, caller, ADMIN_ONLY)
        integration = await self._get_or_raise(integration_id)

        entries: dict[str, str] = {}
        if api_key:
            entries[secret_name(integration_id, PURPOSE_API_KEY)] = api_key
        if webhook_secret:
            entries[secret_name(integration_id, PURPOSE_WEBHOOK_SECRET)] = webhook_secret
        if not entries:
            raise InvalidRequest("No credentials supplied")

        already_vaulted = integration.credentials_in_vault
        await self.vault.store_secrets(
            entries, description=f"Credentials for integration {integration_id}"
        )

        try:
            integration.credentials_in_vault = True
            integration.api_key = None
            integration.webhook_secret = None
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(
                "Failed to mark integration '%s' as vaulted", integration_id
            )
            # Replaced entries of an already-vaulted integration stay; the
            # record still points at them.
            if not already_vaulted:
                await self._discard(list(entries))
            raise Internal() from exc

        logger.info(
            "Stored %d credential(s) in vault for integration '%s' (by %s)",
            len(entries),
            integration_id,
            caller.user_id,
        )
        return BrokerResult(message="Credentials stored securely")

    async def delete_credentials(self, caller: Caller, integration_id: str) -> BrokerResult:
        """Delete an integration together with its vault entries.

        Vault entries are removed first, so the record is never gone while
        its secrets remain reachable.

        Raises:
            Forbidden: Caller is not an admin.
            IntegrationNotFound: No integration with this id.
            VaultWriteFailed: The vault entries could not be removed.
            Internal: The record delete failed.
        """
        await require_role(self.db, caller, ADMIN_ONLY)
        integration = await self._get_or_raise(integration_id)

        await self.vault.delete_secrets(integration_secret_names(integration_id))

        try:
            await self.db.delete(integration)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(
                "Vault entries removed but integration '%s' could not be deleted",
                integration_id,
            )
            raise Internal() from exc

        logger.info("Deleted integration '%s' and its credentials (by %s)", integration_id, caller.user_id)
        return BrokerResult(message="Integration and credentials deleted")

    async def _get_or_raise(self, integration_id: str) -> Integration:
        result = await self.db.execute(
            select(Integration).where(Integration.id == integration_id)
        )
        integration = result.scalar_one_or_none()
        if integration is None:
            raise IntegrationNotFound(integration_id)
        return integration

    async def _discard(self, names: list[str]) -> None:
        """Best-effort removal of vault entries written by a failed store."""
        try:
            await self.vault.delete_secrets(names)
        except BrokerError:
            logger.error("Could not discard %d orphaned vault entries", len(names))
