from credbroker.models.base import AuditMixin, Base, StringPrimaryKeyMixin
from credbroker.models.integration import Integration, IntegrationType
from credbroker.models.job import AIJob
from credbroker.models.profile import Profile, Role
from credbroker.models.vault import VaultSecret

__all__ = [
    "Base",
    "StringPrimaryKeyMixin",
    "AuditMixin",
    "AIJob",
    "Integration",
    "IntegrationType",
    "Profile",
    "Role",
    "VaultSecret",
]
