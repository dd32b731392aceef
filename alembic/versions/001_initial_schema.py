"""Initial schema - profiles, integrations, vault secrets, AI jobs.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables."""

    # 1. profiles (no FKs; role is re-read on every privileged request)
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, unique=True),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), server_default="user", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # 2. integrations (plaintext credential columns must be NULL once vaulted)
    op.create_table(
        "integrations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("integration_type", sa.String(50), nullable=False),
        sa.Column("endpoint_url", sa.Text, nullable=True),
        sa.Column("config", sa.JSON, nullable=False),
        sa.Column("enabled", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("credentials_in_vault", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("api_key", sa.Text, nullable=True),
        sa.Column("webhook_secret", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "NOT credentials_in_vault OR (api_key IS NULL AND webhook_secret IS NULL)",
            name="ck_integrations_no_plaintext_when_vaulted",
        ),
    )
    op.create_index("ix_integrations_created_at_id", "integrations", ["created_at", "id"])

    # 3. vault_secrets (Fernet ciphertext only)
    op.create_table(
        "vault_secrets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("secret", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # 4. ai_jobs (FK to integrations, detached when the integration goes away)
    op.create_table(
        "ai_jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "integration_id",
            sa.String(36),
            sa.ForeignKey("integrations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", sa.String(20), server_default="queued", nullable=False),
        sa.Column("result", sa.JSON, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ai_jobs_integration_id", "ai_jobs", ["integration_id"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index("ix_ai_jobs_integration_id", table_name="ai_jobs")
    op.drop_table("ai_jobs")
    op.drop_table("vault_secrets")
    op.drop_index("ix_integrations_created_at_id", table_name="integrations")
    op.drop_table("integrations")
    op.drop_table("profiles")
