"""Pydantic v2 schemas for the integrations API.

Request schemas for creating and updating integrations. Response data uses
the generic JSONAPIResource with attributes mapped in the router; credential
columns are never part of a response.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, SecretStr

from credbroker.models.integration import IntegrationType


class CreateIntegrationRequest(BaseModel):
    """Request body for creating a new integration.

    ``api_key`` and ``webhook_secret`` are optional. When present they go
    straight to the vault through the credential broker; if that fails the
    integration is not created.
    """

    name: str = Field(..., min_length=1, max_length=100)
    integration_type: IntegrationType
    endpoint_url: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    api_key: SecretStr | None = None
    webhook_secret: SecretStr | None = None


class UpdateIntegrationRequest(BaseModel):
    """Partial update of an integration's editable metadata.

    Credential state cannot be changed here; use the credentials endpoint.
    """

    name: str | None = Field(default=None, min_length=1, max_length=100)
    endpoint_url: str | None = None
    enabled: bool | None = None
    config: dict[str, Any] | None = None
