"""
Credential lifecycle errors.

Remediation:
- NoCredentialFoundError / CredentialExpiredNoRefreshError: the workspace
  must re-install (re-authorize) the app.
- RefreshFailedError: may be transient (network, rate limit) or permanent
  (revoked refresh token). Retry policy belongs to the caller.
"""

from typing import Optional


class CredentialError(Exception):
    """Base exception for credential lifecycle errors."""

    def __init__(self, message: str, workspace_id: Optional[str] = None):
        super().__init__(message)
        self.workspace_id = workspace_id


class NoCredentialFoundError(CredentialError):
    """No credential stored for the workspace (never installed or garbage-collected)."""

    def __init__(self, workspace_id: str):
        super().__init__(
            f"No OAuth token found for workspace: {workspace_id}",
            workspace_id=workspace_id,
        )


class CredentialExpiredNoRefreshError(CredentialError):
    """Token expired and the credential carries no refresh token."""

    def __init__(self, workspace_id: str):
        super().__init__(
            f"Token expired and no refresh token available for workspace: {workspace_id}",
            workspace_id=workspace_id,
        )


class RefreshFailedError(CredentialError):
    """Token refresh against the authorization server failed."""

    def __init__(
        self,
        message: str,
        workspace_id: Optional[str] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, workspace_id=workspace_id)
        self.code = code
        self.status_code = status_code
