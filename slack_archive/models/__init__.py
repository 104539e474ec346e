"""Database models."""

from slack_archive.models.oauth_credential import OAuthCredential

__all__ = ["OAuthCredential"]
