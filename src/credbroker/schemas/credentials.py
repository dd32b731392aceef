"""Request/response contract of the credential broker endpoint.

The endpoint keeps the platform's camelCase wire names. Secret fields are
``SecretStr`` so they never show up in reprs, logs, or validation output.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class CredentialAction(str, enum.Enum):
    STORE = "store"
    DELETE = "delete"


class CredentialsRequest(BaseModel):
    """Body of ``POST /credentials``.

    ``action`` is validated by the endpoint rather than here so an unknown
    action yields the broker's own ``InvalidRequest`` error payload.
    """

    model_config = ConfigDict(populate_by_name=True)

    action: str
    integration_id: str = Field(..., alias="integrationId", min_length=1, max_length=36)
    api_key: SecretStr | None = Field(default=None, alias="apiKey")
    webhook_secret: SecretStr | None = Field(default=None, alias="webhookSecret")


class CredentialsResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    category: str
