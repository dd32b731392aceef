import enum
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, String, Text, false, true
from sqlalchemy.orm import Mapped, mapped_column

from credbroker.models.base import AuditMixin, Base, StringPrimaryKeyMixin


class IntegrationType(str, enum.Enum):
    """Provider kinds: an OpenAI-style API or one of the webhook variants."""

    OPENAI = "openai"
    N8N = "n8n"
    NODUL = "nodul"
    CUSTOM = "custom"


class Integration(Base, StringPrimaryKeyMixin, AuditMixin):
    """External content/automation provider configuration.

    ``api_key`` and ``webhook_secret`` are legacy plaintext columns. Once the
    broker has moved credentials into the vault they must stay NULL, which
    the check constraint enforces at the database level.
    """

    __tablename__ = "integrations"
    __table_args__ = (
        CheckConstraint(
            "NOT credentials_in_vault OR (api_key IS NULL AND webhook_secret IS NULL)",
            name="ck_integrations_no_plaintext_when_vaulted",
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    integration_type: Mapped[str] = mapped_column(String(50), nullable=False)
    endpoint_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    credentials_in_vault: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    webhook_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
