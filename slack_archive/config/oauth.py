"""
Slack app OAuth client configuration.

The client id and secret are needed both when a workspace installs the app
(code exchange) and whenever a rotating bot token is refreshed. They are
read once from the environment and memoised for the life of the process.

Environment:
- SLACK_CLIENT_ID:     Slack app client id (required)
- SLACK_CLIENT_SECRET: Slack app client secret (required)
- SLACK_REDIRECT_URI:  OAuth redirect URI used during installation (optional)
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, variable: Optional[str] = None):
        super().__init__(message)
        self.variable = variable


@dataclass(frozen=True)
class OAuthClientConfig:
    """Slack app credentials. The secret is excluded from repr."""
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: Optional[str] = None


def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigurationError(
            f"{name} environment variable is required",
            variable=name,
        )
    return value


@lru_cache(maxsize=1)
def load_oauth_config() -> OAuthClientConfig:
    """
    Load Slack OAuth client configuration from the environment.

    Returns:
        OAuthClientConfig

    Raises:
        ConfigurationError: If SLACK_CLIENT_ID or SLACK_CLIENT_SECRET is unset
    """
    return OAuthClientConfig(
        client_id=_require_env("SLACK_CLIENT_ID"),
        client_secret=_require_env("SLACK_CLIENT_SECRET"),
        redirect_uri=os.getenv("SLACK_REDIRECT_URI") or None,
    )
