"""SocialSync SQLModel tables — central registry.

Import all models here so SQLModel.metadata is populated.
"""

from socialsync.models.linked_account import LinkedAccount
from socialsync.models.metrics_snapshot import MetricsSnapshot

__all__ = [
    "LinkedAccount",
    "MetricsSnapshot",
]
