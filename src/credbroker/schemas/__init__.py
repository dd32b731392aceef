"""Pydantic schemas for API request/response models."""

from credbroker.schemas.credentials import (
    CredentialAction,
    CredentialsRequest,
    CredentialsResponse,
    ErrorResponse,
)
from credbroker.schemas.jsonapi import (
    JSONAPIListResponse,
    JSONAPIResource,
    JSONAPISingleResponse,
)

__all__ = [
    "CredentialAction",
    "CredentialsRequest",
    "CredentialsResponse",
    "ErrorResponse",
    "JSONAPIListResponse",
    "JSONAPIResource",
    "JSONAPISingleResponse",
]
