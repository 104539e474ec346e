"""
Credential redaction and audit logging utilities.

SECURITY REQUIREMENTS:
- Tokens NEVER appear in logs (access_token, refresh_token, client_secret)
- ALLOWED in logs: workspace_id, workspace_name, bot_user_id
- All credential writes are logged for the audit trail

Audit Events:
- credential.stored
- credential.refreshed
- credential.purged
- credential.error

Usage:
    from slack_archive.credentials.redaction import CredentialAuditLogger, AuditEventType

    audit = CredentialAuditLogger()
    audit.log(
        event_type=AuditEventType.CREDENTIAL_REFRESHED,
        workspace_id="T0123",
        workspace_name="Acme",
    )
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

REDACTED_VALUE = "[REDACTED]"

AUDIT_LOGGER_NAME = "slack_archive.credentials.audit"


class AuditEventType(str, Enum):
    """Credential audit event types."""
    CREDENTIAL_STORED = "credential.stored"
    CREDENTIAL_REFRESHED = "credential.refreshed"
    CREDENTIAL_PURGED = "credential.purged"
    CREDENTIAL_ERROR = "credential.error"


# Slack token formats
CREDENTIAL_SECRET_PATTERNS = [
    re.compile(r"(xox[abpers]-[A-Za-z0-9-]+)"),  # bot/user/app/refresh tokens
    re.compile(r"(xapp-[A-Za-z0-9-]+)"),  # app-level tokens
    re.compile(r"(bearer\s+[A-Za-z0-9._-]+)", re.IGNORECASE),
]

_SECRET_KEY_FRAGMENTS = (
    "token", "secret", "credential", "bearer",
    "oauth", "api_key", "apikey", "password",
)

# Key names that look secret but only carry metadata
_ALLOWED_KEYS = frozenset({
    "workspace_id", "workspace_name", "bot_user_id",
    "has_refresh_token", "token_type", "cache_ttl_hint",
})


def is_credential_secret_key(key: str) -> bool:
    """
    Check if a key name indicates a credential secret.

    Args:
        key: The key name to check

    Returns:
        True if the key likely contains a secret
    """
    if key in _ALLOWED_KEYS:
        return False
    key_lower = key.lower()
    return any(fragment in key_lower for fragment in _SECRET_KEY_FRAGMENTS)


def redact_credential_value(value: Any) -> Any:
    """Redact Slack token patterns from a string value."""
    if not isinstance(value, str):
        return value

    result = value
    for pattern in CREDENTIAL_SECRET_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)
    return result


def redact_credential_data(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact credential secrets from a data structure.

    SECURITY: Always use this before logging credential-related data.

    Args:
        data: Dictionary, list, or other data structure

    Returns:
        Copy of data with secrets redacted
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_credential_secret_key(str(key)):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_credential_data(value, _depth + 1)
        return result

    if isinstance(data, list):
        return [redact_credential_data(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_credential_value(data)

    return data


class CredentialAuditLogger:
    """
    Structured audit logger for credential operations.

    SECURITY:
    - Tokens are NEVER logged
    - metadata is redacted before it is emitted
    """

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self.logger = logging.getLogger(logger_name)

    def log(
        self,
        event_type: AuditEventType,
        workspace_id: str,
        workspace_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: Type of audit event
            workspace_id: Workspace the credential belongs to
            workspace_name: Workspace display name (allowed in logs)
            metadata: Additional context (will be redacted)
        """
        safe_metadata = redact_credential_data(metadata) if metadata else {}

        audit_record = {
            "event_type": event_type.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "workspace_id": workspace_id,
            "workspace_name": workspace_name,
            **safe_metadata,
        }

        self.logger.info(
            f"Credential audit: {event_type.value}",
            extra=audit_record
        )

    def log_error(
        self,
        workspace_id: str,
        error: str,
        workspace_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a credential error. The error text is redacted."""
        self.log(
            event_type=AuditEventType.CREDENTIAL_ERROR,
            workspace_id=workspace_id,
            workspace_name=workspace_name,
            metadata={**(metadata or {}), "error": redact_credential_value(error)},
        )


class CredentialLoggingFilter(logging.Filter):
    """
    Logging filter that redacts credential secrets from log records.

    Usage:
        logger.addFilter(CredentialLoggingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_credential_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_credential_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_credential_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        # Extra fields land directly on the record
        for key in list(record.__dict__.keys()):
            if key in ("msg", "args"):
                continue
            if is_credential_secret_key(key):
                setattr(record, key, REDACTED_VALUE)
            elif isinstance(getattr(record, key), str):
                setattr(record, key, redact_credential_value(getattr(record, key)))

        return True


def setup_credential_logging() -> None:
    """
    Configure credential-safe logging.

    Call this during application startup so every credential logger has
    the redaction filter applied.
    """
    redaction_filter = CredentialLoggingFilter()

    credential_loggers = [
        "slack_archive.cache",
        "slack_archive.credentials",
        "slack_archive.credentials.lifecycle",
        "slack_archive.credentials.oauth_client",
        "slack_archive.credentials.store",
        "slack_archive.credentials.installation",
        AUDIT_LOGGER_NAME,
    ]

    for logger_name in credential_loggers:
        logging.getLogger(logger_name).addFilter(redaction_filter)

    logger.info("Credential logging configured with redaction filter")
