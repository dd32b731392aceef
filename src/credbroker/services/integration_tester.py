"""Connectivity test for a configured integration.

Sends one bounded request to the integration's endpoint using the vaulted
credentials. The outcome reports reachability only; neither secrets nor the
provider's response body are returned.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass

import httpx
from sqlalchemy.exc import SQLAlchemyError

from credbroker.errors import IntegrationNotTestable
from credbroker.models.integration import Integration, IntegrationType
from credbroker.services.vault import (
    PURPOSE_API_KEY,
    PURPOSE_WEBHOOK_SECRET,
    Vault,
    secret_name,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool
    status_code: int | None
    latency_ms: int
    detail: str


def sign_payload(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class IntegrationTester:
    """Probe an integration endpoint.

    Args:
        vault: Vault holding the integration's credentials.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject a mock).
    """

    def __init__(
        self,
        vault: Vault,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.vault = vault
        self.timeout = timeout
        self.transport = transport

    async def run(self, integration: Integration) -> ProbeOutcome:
        """Send a probe request for ``integration``.

        A vaulted credential that cannot be read or decrypted yields a
        failed outcome rather than an exception.

        Raises:
            IntegrationNotTestable: If the integration is disabled or has no
                endpoint URL.
        """
        if not integration.enabled:
            raise IntegrationNotTestable(f"Integration {integration.id} is disabled")
        if not integration.endpoint_url:
            raise IntegrationNotTestable(f"Integration {integration.id} has no endpoint URL")

        try:
            method, url, headers, content = await self._build_request(integration)
        except (ValueError, SQLAlchemyError) as exc:
            logger.warning(
                "Connectivity test for integration %s could not read credentials: %s",
                integration.id,
                type(exc).__name__,
            )
            return ProbeOutcome(
                ok=False, status_code=None, latency_ms=0, detail="Credentials unavailable"
            )

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning(
                "Connectivity test for integration %s failed: %s",
                integration.id,
                type(exc).__name__,
            )
            return ProbeOutcome(
                ok=False, status_code=None, latency_ms=latency_ms, detail="Endpoint unreachable"
            )

        latency_ms = int((time.monotonic() - started) * 1000)
        ok = response.is_success
        logger.info(
            "Connectivity test for integration %s returned %d in %dms",
            integration.id,
            response.status_code,
            latency_ms,
        )
        return ProbeOutcome(
            ok=ok,
            status_code=response.status_code,
            latency_ms=latency_ms,
            detail="Endpoint reachable" if ok else f"Endpoint returned HTTP {response.status_code}",
        )

    async def _build_request(
        self, integration: Integration
    ) -> tuple[str, str, dict[str, str], bytes | None]:
        base_url = integration.endpoint_url.rstrip("/")

        if integration.integration_type == IntegrationType.OPENAI.value:
            headers: dict[str, str] = {}
            api_key = await self._credential(integration, PURPOSE_API_KEY)
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            return "GET", f"{base_url}/models", headers, None

        body = json.dumps(
            {"event": "ping", "integration_id": integration.id}, separators=(",", ":")
        ).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        webhook_secret = await self._credential(integration, PURPOSE_WEBHOOK_SECRET)
        if webhook_secret:
            headers[SIGNATURE_HEADER] = sign_payload(webhook_secret, body)
        return "POST", base_url, headers, body

    async def _credential(self, integration: Integration, purpose: str) -> str | None:
        if not integration.credentials_in_vault:
            return None
        return await self.vault.read_secret(secret_name(integration.id, purpose))
