"""Credential broker endpoint.

A single ``POST`` accepting ``{"action": "store" | "delete", ...}``. Success
returns ``{"success": true, "message": ...}``; failures are rendered by the
app-level ``BrokerError`` handler as ``{"success": false, "error", "category"}``
with the category's HTTP status. Unexpected exceptions are logged here and
surfaced as a generic ``Internal`` error.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from credbroker.api.deps import get_caller, get_credential_broker
from credbroker.auth import Caller
from credbroker.errors import BrokerError, Internal, InvalidRequest
from credbroker.schemas.credentials import (
    CredentialAction,
    CredentialsRequest,
    CredentialsResponse,
    ErrorResponse,
)
from credbroker.services.credential_broker import CredentialBroker

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 500, 502)
}


def _reveal(value) -> str | None:
    return value.get_secret_value() if value is not None else None


@router.post("", responses=_ERROR_RESPONSES)
async def manage_credentials(
    body: CredentialsRequest,
    caller: Caller = Depends(get_caller),
    broker: CredentialBroker = Depends(get_credential_broker),
) -> CredentialsResponse:
    """Store or delete an integration's credentials (admins only)."""
    try:
        action = CredentialAction(body.action)
    except ValueError as exc:
        raise InvalidRequest("Invalid action") from exc

    try:
        if action is CredentialAction.STORE:
            result = await broker.store_credentials(
                caller,
                body.integration_id,
                api_key=_reveal(body.api_key),
                webhook_secret=_reveal(body.webhook_secret),
            )
        else:
            result = await broker.delete_credentials(caller, body.integration_id)
    except BrokerError:
        raise
    except Exception as exc:
        logger.exception(
            "Unexpected error in credential broker (action=%s, integration=%s)",
            action.value,
            body.integration_id,
        )
        raise Internal() from exc

    return CredentialsResponse(success=result.success, message=result.message)
