"""
Credentials module for Slack workspace OAuth tokens.

This module provides:
- Encrypted durable storage of one credential set per workspace
- Refresh-ahead of rotating bot tokens with a shared refresh marker
- Installation (code exchange) persistence
- Audit logging with automatic redaction

SECURITY:
- Tokens are encrypted at rest using ENCRYPTION_KEY
- Tokens NEVER appear in logs
- Allowed in logs: workspace_id, workspace_name, bot_user_id

Usage:
    from slack_archive.credentials import (
        CredentialStore, SlackOAuthClient, TokenCipher, TokenLifecycleManager,
    )
    from slack_archive.cache import build_cache

    store = CredentialStore(db_session, TokenCipher.from_env())
    manager = TokenLifecycleManager(build_cache(), store, SlackOAuthClient())

    token = await manager.get_valid_access_token(team_id, client_id, client_secret)
"""

from slack_archive.credentials.encryption import CredentialEncryptionError, TokenCipher
from slack_archive.credentials.errors import (
    CredentialError,
    CredentialExpiredNoRefreshError,
    NoCredentialFoundError,
    RefreshFailedError,
)
from slack_archive.credentials.installation import (
    InstallationError,
    InstallationService,
    record_from_oauth_response,
)
from slack_archive.credentials.lifecycle import (
    RefreshMarker,
    TokenLifecycleManager,
    is_expired,
)
from slack_archive.credentials.models import CredentialRecord
from slack_archive.credentials.oauth_client import (
    OAuthAccessResponse,
    OAuthRequestError,
    RefreshTokenResponse,
    SlackOAuthClient,
)
from slack_archive.credentials.redaction import (
    AuditEventType,
    CredentialAuditLogger,
    CredentialLoggingFilter,
    redact_credential_data,
    setup_credential_logging,
)
from slack_archive.credentials.store import UNCONDITIONAL, CredentialStore

__all__ = [
    # Record
    "CredentialRecord",
    # Errors
    "CredentialError",
    "NoCredentialFoundError",
    "CredentialExpiredNoRefreshError",
    "RefreshFailedError",
    "CredentialEncryptionError",
    "InstallationError",
    "OAuthRequestError",
    # Storage
    "CredentialStore",
    "TokenCipher",
    "UNCONDITIONAL",
    # Lifecycle
    "TokenLifecycleManager",
    "RefreshMarker",
    "is_expired",
    "InstallationService",
    "record_from_oauth_response",
    # Token endpoint
    "SlackOAuthClient",
    "RefreshTokenResponse",
    "OAuthAccessResponse",
    # Redaction & Audit
    "redact_credential_data",
    "CredentialAuditLogger",
    "CredentialLoggingFilter",
    "AuditEventType",
    "setup_credential_logging",
]
