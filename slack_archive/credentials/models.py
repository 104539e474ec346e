"""
CredentialRecord - the single active Slack credential set of a workspace.

SECURITY:
- access_token and refresh_token are secrets
- repr() and to_safe_dict() NEVER include token values
- workspace_name and bot_user_id are allowed in logs

Invariants:
- expires_at is None means the access token never expires
- cache_ttl_hint is None means the record may be cached without limit
- refresh_token is None means the token cannot be renewed once expired
"""

import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from slack_archive.config.settings import TOKEN_ITEM_PREFIX, TOKEN_SORT_KEY


@dataclass(frozen=True)
class CredentialRecord:
    """Durable OAuth credential for one installed workspace."""
    workspace_id: str
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[int] = None
    scope: Optional[str] = None
    bot_user_id: Optional[str] = None
    workspace_name: Optional[str] = None
    cache_ttl_hint: Optional[int] = None

    def __post_init__(self):
        if not self.workspace_id:
            raise ValueError("workspace_id is required")
        if not self.access_token:
            raise ValueError("access_token is required")

    @property
    def item_id(self) -> str:
        """Durable partition key."""
        return token_item_id(self.workspace_id)

    @property
    def sort_key(self) -> str:
        return TOKEN_SORT_KEY

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    @property
    def never_expires(self) -> bool:
        return self.expires_at is None

    def to_safe_dict(self) -> Dict[str, Any]:
        """
        Return dictionary safe for logging.

        SECURITY: Excludes all token values.
        """
        return {
            "workspace_id": self.workspace_id,
            "workspace_name": self.workspace_name,
            "bot_user_id": self.bot_user_id,
            "scope": self.scope,
            "expires_at": self.expires_at,
            "has_refresh_token": self.can_refresh,
            "cache_ttl_hint": self.cache_ttl_hint,
        }

    def to_cache_payload(self) -> str:
        """Serialize for an external cache backend."""
        return json.dumps(asdict(self))

    @classmethod
    def from_cache_payload(cls, payload: str) -> "CredentialRecord":
        data = json.loads(payload)
        return cls(**data)


def token_item_id(workspace_id: str) -> str:
    """Durable item id for a workspace's credential."""
    return f"{TOKEN_ITEM_PREFIX}{workspace_id}"
