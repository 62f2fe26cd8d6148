"""
Error types.

Every error carries a short machine-readable kind and a message the user
can act on (reconnect, check network, check configuration).
"""

from typing import Optional


class DebriefError(Exception):
    """Base class for all user-facing errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


# =============================================================================
# Source failures
# =============================================================================

class SourceFailure(DebriefError):
    """A single source could not contribute data."""
    kind = "source_failed"


class SourceNotConfigured(SourceFailure):
    kind = "not_configured"

    def __init__(self, source: str):
        super().__init__(f"{source} is not configured. Add credentials in Settings.")
        self.source = source


class SourceUnauthorized(SourceFailure):
    kind = "unauthorized"


class SourceTimeout(SourceFailure):
    kind = "timeout"

    def __init__(self, source: str, seconds: float):
        super().__init__(
            f"{source} did not respond within {seconds:g}s. "
            "Check your internet connection and try again."
        )


class SourceRemoteError(SourceFailure):
    kind = "remote_error"

    def __init__(self, source: str, detail: str, status_code: Optional[int] = None):
        super().__init__(f"{source} error: {detail}")
        self.status_code = status_code


# =============================================================================
# OAuth
# =============================================================================

class OAuthError(DebriefError):
    kind = "oauth_error"


class OAuthNotConfigured(OAuthError):
    kind = "oauth_not_configured"

    def __init__(self):
        super().__init__(
            "Google OAuth client is not configured. "
            "Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET."
        )


class OAuthNotConnected(OAuthError):
    kind = "oauth_not_connected"

    def __init__(self):
        super().__init__("Google account is not connected.")


class OAuthUnauthorized(OAuthError):
    kind = "oauth_unauthorized"

    def __init__(self):
        super().__init__(
            "Google Calendar requires re-authentication. "
            "Click 'Connect Google Account' in Settings."
        )


class OAuthRefreshError(OAuthError):
    kind = "oauth_refresh_failed"


# =============================================================================
# Delivery, storage
# =============================================================================

class NoDeliverableChannel(DebriefError):
    kind = "no_deliverable_channel"

    def __init__(self):
        super().__init__(
            "No enabled delivery channel was selected. "
            "Enable a channel in Settings before sending."
        )


class VaultError(DebriefError):
    kind = "vault_error"


class PersistenceError(DebriefError):
    kind = "persistence_error"


class SummaryNotFound(DebriefError):
    kind = "not_found"

    def __init__(self, summary_id):
        super().__init__(f"Summary {summary_id} not found")
        self.summary_id = summary_id
