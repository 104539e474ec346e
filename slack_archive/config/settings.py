"""
Token lifecycle tunables.

Values are fixed at import time. The integer and float knobs can be
overridden through environment variables for operational tuning; the cache
key prefixes are part of the storage layout and are not configurable.
"""

import os

# Cache key prefixes
TOKEN_CACHE_PREFIX = "oauth_token:"
REFRESH_CACHE_PREFIX = "token_refresh:"

# How long a credential copy may live in the ephemeral cache (seconds)
TOKEN_DEFAULT_TTL = int(os.getenv("TOKEN_DEFAULT_TTL", "600"))

# Slack rotates bot tokens every 12 hours
TOKEN_REFRESH_INTERVAL = int(os.getenv("TOKEN_REFRESH_INTERVAL", "43200"))

# Refresh one third of the interval ahead of hard expiry
TOKEN_REFRESH_BUFFER = TOKEN_REFRESH_INTERVAL // 3

# Share of a record's cache TTL hint actually used for the cache entry
CACHE_TTL_FRACTION = 0.6

# Refresh marker windows (seconds)
REFRESH_MARKER_TTL_SECONDS = int(os.getenv("REFRESH_MARKER_TTL_SECONDS", "60"))
REFRESH_MARKER_CLEAR_TTL_SECONDS = 1

# Single pause before re-reading a record another caller is refreshing
REFRESH_RETRY_DELAY_SECONDS = float(os.getenv("REFRESH_RETRY_DELAY_SECONDS", "0.1"))

# Authorization server
SLACK_OAUTH_URL = os.getenv("SLACK_OAUTH_URL", "https://slack.com/api/oauth.v2.access")
REFRESH_TIMEOUT_SECONDS = float(os.getenv("SLACK_OAUTH_TIMEOUT_SECONDS", "10"))

# Durable key layout: one active credential set per workspace
TOKEN_ITEM_PREFIX = "oauth#"
TOKEN_SORT_KEY = "1"
