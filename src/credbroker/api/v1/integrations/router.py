"""Integrations endpoints returning JSON:API responses.

Create goes through the provisioner (metadata insert plus vaulted
credentials, compensated on failure); delete goes through the credential
broker so vault entries are removed with the record. List, get, update and
the connectivity test are plain metadata operations open to admins and
editors.

Credential columns are never serialized; clients only see the
``credentials_in_vault`` flag.

Every error is a ``BrokerError`` rendered as
``{"success": false, "error", "category"}``. Only body validation keeps
FastAPI's 422 shape.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from credbroker.api.deps import (
    get_caller,
    get_credential_broker,
    get_db,
    get_integration_tester,
    get_vault,
)
from credbroker.auth import Caller
from credbroker.errors import IntegrationNotFound, InvalidRequest
from credbroker.models.integration import Integration, IntegrationType
from credbroker.schemas.integration import (
    CreateIntegrationRequest,
    UpdateIntegrationRequest,
)
from credbroker.schemas.jsonapi import (
    JSONAPIListResponse,
    JSONAPIRequest,
    JSONAPIResource,
    JSONAPISingleResponse,
)
from credbroker.schemas.pagination import PaginationLinks, encode_cursor
from credbroker.services.credential_broker import CredentialBroker
from credbroker.services.integration_service import IntegrationService
from credbroker.services.integration_tester import IntegrationTester
from credbroker.services.provisioning import IntegrationProvisioner
from credbroker.services.roles import INTEGRATION_MANAGERS, require_role
from credbroker.services.vault import Vault

router = APIRouter()


# ---------------------------------------------------------------------------
# Attribute mapping helpers
# ---------------------------------------------------------------------------


def _integration_to_attrs(integration: Integration) -> dict:
    """Map an Integration model to JSON:API attributes (no credential columns)."""
    return {
        "name": integration.name,
        "integration_type": integration.integration_type,
        "endpoint_url": integration.endpoint_url,
        "config": integration.config,
        "enabled": integration.enabled,
        "credentials_in_vault": integration.credentials_in_vault,
        "created_by": integration.created_by,
        "created_at": integration.created_at.isoformat(),
        "updated_at": integration.updated_at.isoformat(),
    }


def _integration_resource(integration: Integration) -> JSONAPIResource:
    return JSONAPIResource(
        type="integrations",
        id=str(integration.id),
        attributes=_integration_to_attrs(integration),
    )


def _reveal(value) -> str | None:
    return value.get_secret_value() if value is not None else None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_integration(
    body: JSONAPIRequest[CreateIntegrationRequest],
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    vault: Vault = Depends(get_vault),
) -> JSONAPISingleResponse:
    """Create an integration, vaulting any supplied credentials (admins only)."""
    attrs = body.data.attributes
    provisioner = IntegrationProvisioner(db, vault)
    integration = await provisioner.create(
        caller,
        name=attrs.name,
        integration_type=attrs.integration_type.value,
        endpoint_url=attrs.endpoint_url,
        config=attrs.config,
        enabled=attrs.enabled,
        api_key=_reveal(attrs.api_key),
        webhook_secret=_reveal(attrs.webhook_secret),
    )

    return JSONAPISingleResponse(data=_integration_resource(integration))


@router.get("")
async def list_integrations(
    request: Request,
    page_after: str | None = Query(default=None, alias="page[after]"),
    page_size: int = Query(default=20, ge=1, le=100, alias="page[size]"),
    integration_type: IntegrationType | None = Query(default=None, alias="type"),
    enabled: bool | None = Query(default=None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> JSONAPIListResponse:
    """List integrations with cursor-based pagination.

    Optional ``type`` and ``enabled`` query parameters narrow the result.
    """
    await require_role(db, caller, INTEGRATION_MANAGERS)
    service = IntegrationService(db)
    type_value = integration_type.value if integration_type else None
    try:
        integrations, pagination_meta = await service.list_integrations(
            page_size=page_size,
            after=page_after,
            integration_type=type_value,
            enabled=enabled,
        )
    except ValueError as exc:
        raise InvalidRequest(str(exc)) from exc

    filters = ""
    if type_value:
        filters += f"&type={type_value}"
    if enabled is not None:
        filters += f"&enabled={str(enabled).lower()}"

    base_url = str(request.url).split("?")[0]
    links = PaginationLinks(first=f"{base_url}?page[size]={page_size}{filters}")

    if pagination_meta.has_next and integrations:
        last_integration = integrations[-1]
        next_cursor = encode_cursor(
            last_integration.created_at, str(last_integration.id)
        )
        links.next = (
            f"{base_url}?page[after]={next_cursor}&page[size]={page_size}{filters}"
        )

    return JSONAPIListResponse(
        data=[_integration_resource(i) for i in integrations],
        meta=pagination_meta.model_dump(),
        links=links.model_dump(exclude_none=True),
    )


@router.get("/{integration_id}")
async def get_integration(
    integration_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> JSONAPISingleResponse:
    """Get a single integration by id."""
    await require_role(db, caller, INTEGRATION_MANAGERS)
    service = IntegrationService(db)
    integration = await service.get_integration(integration_id)
    if integration is None:
        raise IntegrationNotFound(integration_id)

    return JSONAPISingleResponse(data=_integration_resource(integration))


@router.patch("/{integration_id}")
async def update_integration(
    integration_id: str,
    body: JSONAPIRequest[UpdateIntegrationRequest],
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> JSONAPISingleResponse:
    """Update name, endpoint, enabled flag, or config of an integration."""
    await require_role(db, caller, INTEGRATION_MANAGERS)
    service = IntegrationService(db)
    update_data = body.data.attributes.model_dump(exclude_unset=True)
    if await service.get_integration(integration_id) is None:
        raise IntegrationNotFound(integration_id)

    try:
        integration = await service.update_integration(
            integration_id, **update_data
        )
    except ValueError as exc:
        raise InvalidRequest(str(exc)) from exc

    return JSONAPISingleResponse(data=_integration_resource(integration))


@router.delete("/{integration_id}", status_code=204)
async def delete_integration(
    integration_id: str,
    caller: Caller = Depends(get_caller),
    broker: CredentialBroker = Depends(get_credential_broker),
) -> None:
    """Delete an integration and its vaulted credentials (admins only)."""
    await broker.delete_credentials(caller, integration_id)


@router.post("/{integration_id}/test")
async def test_integration(
    integration_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    tester: IntegrationTester = Depends(get_integration_tester),
) -> JSONAPISingleResponse:
    """Send a probe request to the integration's endpoint."""
    await require_role(db, caller, INTEGRATION_MANAGERS)
    service = IntegrationService(db)
    integration = await service.get_integration(integration_id)
    if integration is None:
        raise IntegrationNotFound(integration_id)

    outcome = await tester.run(integration)

    return JSONAPISingleResponse(
        data=JSONAPIResource(
            type="integration-tests",
            id=str(integration.id),
            attributes={
                "ok": outcome.ok,
                "status_code": outcome.status_code,
                "latency_ms": outcome.latency_ms,
                "detail": outcome.detail,
            },
        )
    )
