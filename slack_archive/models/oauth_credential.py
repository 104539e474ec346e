"""
OAuthCredential model - durable storage for workspace OAuth credentials.

SECURITY REQUIREMENTS:
- Tokens are encrypted at rest using ENCRYPTION_KEY env var
- No plaintext tokens outside process memory
- Tokens are NEVER included in repr

Key layout:
- item_id = "oauth#<workspace_id>", sort_key = "1"
- Exactly one active credential set per workspace; a new installation
  overwrites the previous row
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from slack_archive.db_base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthCredential(Base):
    """Encrypted Slack OAuth credential row."""

    __tablename__ = "oauth_credentials"

    item_id = Column(
        String(1024),
        primary_key=True,
        comment="oauth#<workspace_id>"
    )
    sort_key = Column(
        String(64),
        primary_key=True,
        default="1",
        comment="Constant secondary key (single active credential per workspace)"
    )
    workspace_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Slack team id"
    )

    # Encrypted tokens - NEVER log these values
    access_token_encrypted = Column(
        Text,
        nullable=False,
        comment="Encrypted bot access token - NEVER log plaintext"
    )
    refresh_token_encrypted = Column(
        Text,
        nullable=True,
        comment="Encrypted refresh token (rotating tokens only)"
    )

    # NULL means the token never expires
    expires_at = Column(
        BigInteger,
        nullable=True,
        comment="Access token expiry (epoch seconds), NULL = never"
    )
    cache_ttl_hint = Column(
        Integer,
        nullable=True,
        comment="Seconds the record may live in the cache, NULL = no limit"
    )

    scope = Column(Text, nullable=True)
    bot_user_id = Column(String(255), nullable=True)
    workspace_name = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """Safe repr - NEVER include token values."""
        return (
            f"<OAuthCredential("
            f"item_id={self.item_id}, "
            f"workspace_name={self.workspace_name}, "
            f"expires_at={self.expires_at})>"
        )
