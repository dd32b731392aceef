"""Secrets vault backed by a Fernet-encrypted table.

The vault stores named secrets. Integration credentials are stored under
names derived from the integration id and the secret's purpose, so each
(integration, purpose) pair has at most one live entry: storing again
replaces the ciphertext in place and keeps no history.

The vault owns its own session factory and may live in a different
database than the integration records.
"""

from __future__ import annotations

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credbroker.errors import VaultWriteFailed
from credbroker.models.vault import VaultSecret

logger = logging.getLogger(__name__)

PURPOSE_API_KEY = "api_key"
PURPOSE_WEBHOOK_SECRET = "webhook_secret"
CREDENTIAL_PURPOSES: tuple[str, ...] = (PURPOSE_API_KEY, PURPOSE_WEBHOOK_SECRET)


def secret_name(integration_id: str, purpose: str) -> str:
    """Derive the vault name for one of an integration's credentials.

    Raises:
        ValueError: If ``purpose`` is not a known credential purpose.
    """
    if purpose not in CREDENTIAL_PURPOSES:
        raise ValueError(f"Unknown credential purpose: {purpose}")
    return f"integration_{integration_id}_{purpose}"


def integration_secret_names(integration_id: str) -> list[str]:
    """Every vault name an integration can own."""
    return [secret_name(integration_id, purpose) for purpose in CREDENTIAL_PURPOSES]


def load_cipher(key: str | bytes) -> Fernet:
    """Build a Fernet cipher from a configured key.

    Accepts either a url-safe base64 Fernet key or 32 raw bytes.

    Raises:
        ValueError: If the key is empty or not usable by Fernet.
    """
    if not key:
        raise ValueError("Vault encryption key is not set")
    key_bytes = key.encode("utf-8") if isinstance(key, str) else key
    if len(key_bytes) == 32:
        key_bytes = base64.urlsafe_b64encode(key_bytes)
    try:
        return Fernet(key_bytes)
    except (ValueError, TypeError) as exc:
        raise ValueError("Invalid vault encryption key") from exc


class Vault:
    """Encrypted named-secret store.

    Args:
        session_factory: Session factory bound to the vault database.
        cipher: Fernet instance used to encrypt values at rest.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: Fernet,
    ) -> None:
        self.session_factory = session_factory
        self.cipher = cipher

    async def store_secrets(
        self,
        entries: dict[str, str],
        description: str | None = None,
    ) -> list[str]:
        """Encrypt and upsert a batch of secrets in a single transaction.

        Either every entry in ``entries`` is stored or none is: any failure
        rolls back the whole batch.

        Args:
            entries: Mapping of vault name to plaintext secret.
            description: Optional description stored alongside each entry.

        Returns:
            The names that were written.

        Raises:
            VaultWriteFailed: If encryption or the database write fails.
        """
        current = None
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for name, plaintext in entries.items():
                        current = name
                        ciphertext = self.cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")
                        existing = await session.scalar(
                            select(VaultSecret).where(VaultSecret.name == name)
                        )
                        if existing is None:
                            session.add(
                                VaultSecret(name=name, secret=ciphertext, description=description)
                            )
                        else:
                            existing.secret = ciphertext
                            if description is not None:
                                existing.description = description
                        await session.flush()
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            logger.error(
                "Vault write failed for '%s' (%s); batch rolled back",
                current,
                type(exc).__name__,
            )
            raise VaultWriteFailed(f"Failed to store secret '{current}' in vault") from exc

        logger.info("Stored %d secret(s) in vault", len(entries))
        return list(entries)

    async def delete_secrets(self, names: list[str]) -> int:
        """Delete the named secrets. Missing names are ignored.

        Returns:
            Number of entries removed.

        Raises:
            VaultWriteFailed: If the delete cannot be committed.
        """
        if not names:
            return 0
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(VaultSecret).where(VaultSecret.name.in_(names))
                    )
        except SQLAlchemyError as exc:
            logger.error("Vault delete failed (%s)", type(exc).__name__)
            raise VaultWriteFailed("Failed to delete secrets from vault") from exc

        removed = result.rowcount or 0
        logger.info("Deleted %d secret(s) from vault", removed)
        return removed

    async def read_secret(self, name: str) -> str | None:
        """Decrypt and return a secret, or None if the name is unknown.

        Server-side use only; never expose the return value to API callers.

        Raises:
            ValueError: If the stored ciphertext cannot be decrypted.
        """
        async with self.session_factory() as session:
            ciphertext = await session.scalar(
                select(VaultSecret.secret).where(VaultSecret.name == name)
            )
        if ciphertext is None:
            return None
        try:
            return self.cipher.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError(f"Vault entry '{name}' cannot be decrypted") from exc

    async def has_secret(self, name: str) -> bool:
        async with self.session_factory() as session:
            found = await session.scalar(
                select(VaultSecret.id).where(VaultSecret.name == name)
            )
        return found is not None

    async def ping(self) -> None:
        """Round-trip the vault database; raises on connectivity failure."""
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))
