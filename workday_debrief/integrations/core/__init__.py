"""Core integration infrastructure."""

from .tokens import TokenManager, SecretVault, VaultKeys, MASKED_SECRET
from .oauth import OAuthSessionManager, OAuthState, OAuthEvent
from .types import (
    SourceName,
    SourceState,
    DeliveryChannel,
    ExportResult,
    ExportStatus,
)

__all__ = [
    "TokenManager",
    "SecretVault",
    "VaultKeys",
    "MASKED_SECRET",
    "OAuthSessionManager",
    "OAuthState",
    "OAuthEvent",
    "SourceName",
    "SourceState",
    "DeliveryChannel",
    "ExportResult",
    "ExportStatus",
]
