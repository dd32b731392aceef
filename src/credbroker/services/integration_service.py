"""Integration record store service layer.

Provides create, list, get, update, and delete operations for integration
metadata with cursor-based pagination and optional filtering. Secret
material never flows through this service: the credential columns and the
``credentials_in_vault`` flag are owned by the credential broker.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.models.integration import Integration
from credbroker.schemas.pagination import PaginationMeta, decode_cursor

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"name", "endpoint_url", "enabled", "config"})
BROKER_OWNED_FIELDS = frozenset({"credentials_in_vault", "api_key", "webhook_secret"})


class IntegrationService:
    """Service for integration metadata CRUD operations with pagination.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_integration(
        self,
        name: str,
        integration_type: str,
        endpoint_url: str | None = None,
        config: dict[str, Any] | None = None,
        enabled: bool = True,
        created_by: str | None = None,
        integration_id: str | None = None,
    ) -> Integration:
        """Insert a metadata-only integration row.

        The row always starts with ``credentials_in_vault = False`` and no
        plaintext credentials.

        Args:
            name: Integration display name.
            integration_type: Provider kind (see ``IntegrationType``).
            endpoint_url: Provider endpoint.
            config: Provider-specific settings, opaque to the service.
            enabled: Whether the integration is active.
            created_by: User id of the creating admin.
            integration_id: Explicit id; generated when omitted.

        Returns:
            The created Integration record.
        """
        integration = Integration(
            name=name,
            integration_type=integration_type,
            endpoint_url=endpoint_url,
            config=config or {},
            enabled=enabled,
            credentials_in_vault=False,
            created_by=created_by,
        )
        if integration_id:
            integration.id = integration_id
        self.db.add(integration)
        await self.db.commit()
        await self.db.refresh(integration)
        logger.info("Created integration '%s' (%s)", integration.id, integration_type)
        return integration

    async def list_integrations(
        self,
        page_size: int = 20,
        after: str | None = None,
        integration_type: str | None = None,
        enabled: bool | None = None,
    ) -> tuple[list[Integration], PaginationMeta]:
        """List integrations with cursor-based pagination.

        Args:
            page_size: Maximum number of integrations to return.
            after: Opaque cursor for pagination.
            integration_type: Optional filter by integration type.
            enabled: Optional filter by enabled flag.

        Returns:
            Tuple of (integrations list, pagination metadata).
        """
        query = select(Integration)

        if integration_type:
            query = query.where(Integration.integration_type == integration_type)
        if enabled is not None:
            query = query.where(Integration.enabled == enabled)

        if after:
            cursor_created_at, cursor_id = decode_cursor(after)
            query = query.where(
                (Integration.created_at > cursor_created_at)
                | (
                    (Integration.created_at == cursor_created_at)
                    & (Integration.id > cursor_id)
                )
            )

        query = query.order_by(
            Integration.created_at.asc(), Integration.id.asc()
        )
        query = query.limit(page_size + 1)

        result = await self.db.execute(query)
        integrations = list(result.scalars().all())

        has_next = len(integrations) > page_size
        if has_next:
            integrations = integrations[:page_size]

        has_prev = after is not None

        return integrations, PaginationMeta(
            has_next=has_next, has_prev=has_prev
        )

    async def get_integration(
        self, integration_id: str
    ) -> Integration | None:
        """Get an integration by id.

        Returns:
            The Integration record, or None if not found.
        """
        result = await self.db.execute(
            select(Integration).where(Integration.id == integration_id)
        )
        return result.scalar_one_or_none()

    async def update_integration(
        self, integration_id: str, **kwargs: Any
    ) -> Integration:
        """Partial update of an integration's editable fields.

        Only ``name``, ``endpoint_url``, ``enabled`` and ``config`` can be
        changed here. ``None`` values are skipped.

        Raises:
            ValueError: If the integration is not found or a non-editable
                field is passed.
        """
        forbidden = set(kwargs) & BROKER_OWNED_FIELDS
        if forbidden:
            raise ValueError(
                f"Fields managed by the credential broker: {sorted(forbidden)}"
            )
        unknown = set(kwargs) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")

        integration = await self.get_integration(integration_id)
        if integration is None:
            raise ValueError(f"Integration not found: {integration_id}")

        for field, value in kwargs.items():
            if value is not None:
                setattr(integration, field, value)

        await self.db.commit()
        await self.db.refresh(integration)
        return integration

    async def delete_integration(self, integration_id: str) -> None:
        """Hard-delete an integration that has no vaulted credentials.

        Used for rows that never received credentials (including the
        compensation step of a failed create). Vaulted integrations must be
        deleted through the credential broker.

        Raises:
            ValueError: If the integration is not found or has credentials
                in the vault.
        """
        integration = await self.get_integration(integration_id)
        if integration is None:
            raise ValueError(f"Integration not found: {integration_id}")
        if integration.credentials_in_vault:
            raise ValueError(
                f"Integration {integration_id} has vaulted credentials; "
                "delete it through the credential broker"
            )

        await self.db.delete(integration)
        await self.db.commit()
