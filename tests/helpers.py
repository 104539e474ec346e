"""
Shared test helpers: fake clock, recording cache and record factory.

NOTE: Token values are obviously fake to avoid triggering secret scanning.
"""

from typing import Any, List, Optional, Tuple

from slack_archive.cache import InMemoryCache
from slack_archive.credentials.models import CredentialRecord

WORKSPACE_ID = "T0TESTWS01"
NOW = 1_700_000_000


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingCache(InMemoryCache):
    """In-memory cache that records every set() call."""

    def __init__(self, clock=None):
        super().__init__(clock=clock or FakeClock())
        self.sets: List[Tuple[str, Any, Optional[float]]] = []

    async def set(self, key, value, ttl_seconds=None):
        self.sets.append((key, value, ttl_seconds))
        await super().set(key, value, ttl_seconds)

    def ttl_for(self, key: str) -> Optional[float]:
        """TTL of the most recent set() for key."""
        for set_key, _, ttl in reversed(self.sets):
            if set_key == key:
                return ttl
        raise KeyError(key)


def make_record(**overrides) -> CredentialRecord:
    """Factory for credential records."""
    fields = {
        "workspace_id": WORKSPACE_ID,
        "access_token": "test_access_token_not_real_001",
        "refresh_token": "test_refresh_token_not_real_001",
        "expires_at": NOW + 43200,
        "scope": "channels:history,channels:read",
        "bot_user_id": "U0BOT001",
        "workspace_name": "Test Workspace",
        "cache_ttl_hint": 43200,
    }
    fields.update(overrides)
    return CredentialRecord(**fields)
