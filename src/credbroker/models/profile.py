import enum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from credbroker.models.base import AuditMixin, Base, StringPrimaryKeyMixin


class Role(str, enum.Enum):
    """Platform user roles, lowest to highest privilege."""

    USER = "user"
    AUTHOR = "author"
    MODERATOR = "moderator"
    EDITOR = "editor"
    ADMIN = "admin"


class Profile(Base, StringPrimaryKeyMixin, AuditMixin):
    """Per-user profile carrying the authoritative role."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), default=Role.USER.value, server_default=Role.USER.value, nullable=False
    )
