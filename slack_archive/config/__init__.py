"""Configuration module for the credential lifecycle."""

from slack_archive.config.oauth import (
    ConfigurationError,
    OAuthClientConfig,
    load_oauth_config,
)

__all__ = [
    "ConfigurationError",
    "OAuthClientConfig",
    "load_oauth_config",
]
