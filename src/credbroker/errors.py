"""Error taxonomy for credential broker operations.

Every error carries a ``category`` (the name clients switch on) and the HTTP
status it maps to. Messages are safe to return to callers: they never include
secret material, and ``Internal`` always carries a generic message.
"""

from __future__ import annotations


class BrokerError(Exception):
    """Base class for structured broker failures."""

    category: str = "Internal"
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message, "category": self.category}


class Unauthorized(BrokerError):
    """Missing, malformed, or expired caller identity."""

    category = "Unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(BrokerError):
    """Valid identity without the required role."""

    category = "Forbidden"
    status_code = 403
    default_message = "Admin access required"


class IntegrationNotFound(BrokerError):
    category = "IntegrationNotFound"
    status_code = 404
    default_message = "Integration not found"

    def __init__(self, integration_id: str) -> None:
        self.integration_id = integration_id
        super().__init__(f"Integration not found: {integration_id}")


class VaultWriteFailed(BrokerError):
    """The secrets vault rejected a write; nothing from the batch was kept."""

    category = "VaultWriteFailed"
    status_code = 502
    default_message = "Failed to store credentials in vault"


class IntegrationNotTestable(BrokerError):
    """The integration is disabled or has nowhere to send a request."""

    category = "IntegrationNotTestable"
    status_code = 409
    default_message = "Integration cannot be tested"


class InvalidRequest(BrokerError):
    category = "InvalidRequest"
    status_code = 400
    default_message = "Invalid request"


class Internal(BrokerError):
    category = "Internal"
    status_code = 500
    default_message = "Internal error"
