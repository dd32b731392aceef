from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from credbroker.models.base import AuditMixin, Base, StringPrimaryKeyMixin


class VaultSecret(Base, StringPrimaryKeyMixin, AuditMixin):
    """Named, encrypted secret held by the vault.

    ``secret`` is Fernet ciphertext; plaintext never reaches this table.
    """

    __tablename__ = "vault_secrets"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    secret: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
