"""
Bot token lifecycle: serve a valid access token, refreshing ahead of expiry.

Callers are independent and stateless (many request handlers at once).
The only shared state lives in the ephemeral cache and the durable store:

    cache  ── oauth_token:<workspace_id>    disposable copy of the record
           ── token_refresh:<workspace_id>  refresh marker (short TTL)
    store  ── oauth#<workspace_id> / "1"    authoritative record

Refresh flow:
1. Read the record (cache, then store). Expired records found in the store
   are deleted and reported as absent.
2. Return the access token while it is outside the refresh buffer.
3. Otherwise, if another caller raised the refresh marker, wait once,
   re-read once and return whatever is there.
4. Otherwise refresh against the token endpoint, persist the new record,
   re-populate the cache and leave the marker raised for its window so
   stragglers pick up the new record instead of refreshing again.

The marker is a best-effort debounce, NOT a lock: has/set is not atomic,
so two callers can still refresh concurrently. Both overwrite the same
durable record, which is acceptable.

Usage:
    manager = TokenLifecycleManager(cache, store, SlackOAuthClient())
    token = await manager.get_valid_access_token(team_id, client_id, client_secret)
"""

import asyncio
import dataclasses
import logging
import time
from typing import Awaitable, Callable, Optional

from slack_archive.cache import EphemeralCache
from slack_archive.config.settings import (
    CACHE_TTL_FRACTION,
    REFRESH_CACHE_PREFIX,
    REFRESH_MARKER_CLEAR_TTL_SECONDS,
    REFRESH_MARKER_TTL_SECONDS,
    REFRESH_RETRY_DELAY_SECONDS,
    TOKEN_CACHE_PREFIX,
    TOKEN_DEFAULT_TTL,
    TOKEN_REFRESH_BUFFER,
)
from slack_archive.credentials.errors import (
    CredentialExpiredNoRefreshError,
    NoCredentialFoundError,
    RefreshFailedError,
)
from slack_archive.credentials.models import CredentialRecord
from slack_archive.credentials.oauth_client import OAuthRequestError, SlackOAuthClient
from slack_archive.credentials.redaction import AuditEventType, CredentialAuditLogger
from slack_archive.credentials.store import CredentialStore

logger = logging.getLogger(__name__)


def token_cache_key(workspace_id: str) -> str:
    return f"{TOKEN_CACHE_PREFIX}{workspace_id}"


def default_refresh_buffer(record: CredentialRecord) -> int:
    """
    Refresh buffer for a record: one third of its token lifetime.

    Records without a TTL hint fall back to one third of Slack's known
    rotation interval.
    """
    if record.cache_ttl_hint:
        return record.cache_ttl_hint // 3
    return TOKEN_REFRESH_BUFFER


def is_expired(
    record: CredentialRecord,
    buffer_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> bool:
    """
    Check if a record's access token is expired or inside the refresh buffer.

    Args:
        record: Credential to check
        buffer_seconds: Seconds ahead of expires_at at which the token counts
            as expired. Defaults to default_refresh_buffer(record).
        now: Epoch seconds (defaults to the current time)

    Returns:
        False for never-expiring records, else now >= expires_at - buffer
    """
    if record.never_expires:
        return False
    if buffer_seconds is None:
        buffer_seconds = default_refresh_buffer(record)
    if now is None:
        now = time.time()
    return now >= record.expires_at - buffer_seconds


class RefreshMarker:
    """
    Per-workspace "refresh in flight or just finished" flag with a TTL.

    Lives in the shared cache so it is visible across processes.
    """

    def __init__(
        self,
        cache: EphemeralCache,
        window_seconds: float = REFRESH_MARKER_TTL_SECONDS,
        clear_ttl_seconds: float = REFRESH_MARKER_CLEAR_TTL_SECONDS,
    ):
        self.cache = cache
        self.window_seconds = window_seconds
        self.clear_ttl_seconds = clear_ttl_seconds

    @staticmethod
    def key(workspace_id: str) -> str:
        return f"{REFRESH_CACHE_PREFIX}{workspace_id}"

    async def is_set(self, workspace_id: str) -> bool:
        return bool(await self.cache.get(self.key(workspace_id)))

    async def raise_marker(self, workspace_id: str) -> None:
        await self.cache.set(self.key(workspace_id), True, self.window_seconds)

    async def clear(self, workspace_id: str) -> None:
        await self.cache.set(self.key(workspace_id), False, self.clear_ttl_seconds)


class TokenLifecycleManager:
    """
    Returns currently valid bot tokens, refreshing them transparently.

    Holds no per-workspace state of its own; any number of managers in any
    number of processes may share one cache and one store.
    """

    def __init__(
        self,
        cache: EphemeralCache,
        store: CredentialStore,
        oauth_client: SlackOAuthClient,
        *,
        refresh_buffer: Optional[int] = None,
        default_cache_ttl: float = TOKEN_DEFAULT_TTL,
        retry_delay: float = REFRESH_RETRY_DELAY_SECONDS,
        marker: Optional[RefreshMarker] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the lifecycle manager.

        Args:
            cache: Ephemeral cache shared with other callers
            store: Durable credential store
            oauth_client: Slack token endpoint client
            refresh_buffer: Fixed refresh buffer in seconds. None uses
                default_refresh_buffer() per record.
            default_cache_ttl: Cache TTL for records without a TTL hint and
                for freshly refreshed records
            retry_delay: Pause before re-reading a record being refreshed
                by another caller
            marker: Refresh marker (defaults to one backed by cache)
            clock: Epoch-seconds clock
            sleep: Async sleep used for the single wait step
        """
        self.cache = cache
        self.store = store
        self.oauth_client = oauth_client
        self.refresh_buffer = refresh_buffer
        self.default_cache_ttl = default_cache_ttl
        self.retry_delay = retry_delay
        self.marker = marker or RefreshMarker(cache)
        self._clock = clock
        self._sleep = sleep
        self.audit = CredentialAuditLogger()

    def is_expired(self, record: CredentialRecord, buffer_seconds: Optional[int] = None) -> bool:
        if buffer_seconds is None:
            buffer_seconds = self.refresh_buffer
        return is_expired(record, buffer_seconds, now=self._clock())

    def _cache_ttl_for(self, record: CredentialRecord) -> float:
        # Expire the cached copy well before the record itself
        if record.cache_ttl_hint:
            return record.cache_ttl_hint * CACHE_TTL_FRACTION
        return self.default_cache_ttl

    async def _read_cached(self, workspace_id: str) -> Optional[CredentialRecord]:
        payload = await self.cache.get(token_cache_key(workspace_id))
        if not payload:
            return None
        try:
            return CredentialRecord.from_cache_payload(payload)
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring malformed cached credential",
                extra={"workspace_id": workspace_id}
            )
            return None

    async def fetch_record(self, workspace_id: str) -> Optional[CredentialRecord]:
        """
        Get a workspace's record from the cache, falling back to the store.

        Cache hits are returned without an expiry check; the cache TTL
        already bounds their staleness. A store record that is expired
        (default buffer) is deleted and reported as absent.

        Returns:
            CredentialRecord or None
        """
        record = await self._read_cached(workspace_id)
        if record is not None:
            return record

        record = await self.store.get_latest(workspace_id)
        if record is None:
            return None

        if is_expired(record, now=self._clock()):
            await self.store.delete(workspace_id, expected_expires_at=record.expires_at)
            logger.info(
                "Discarded expired credential",
                extra={"workspace_id": workspace_id, "expires_at": record.expires_at}
            )
            return None

        await self.cache.set(
            token_cache_key(workspace_id),
            record.to_cache_payload(),
            self._cache_ttl_for(record),
        )
        return record

    async def get_valid_access_token(
        self,
        workspace_id: str,
        client_id: str,
        client_secret: str,
    ) -> str:
        """
        Get a valid bot token for a workspace, refreshing if necessary.

        Returns:
            Access token (handle with care, never log)

        Raises:
            NoCredentialFoundError: No record for the workspace
            CredentialExpiredNoRefreshError: Expired and not renewable
            RefreshFailedError: The token endpoint refused or was unreachable
        """
        record = await self.fetch_record(workspace_id)
        if record is None:
            raise NoCredentialFoundError(workspace_id)

        if not self.is_expired(record):
            return record.access_token

        if not record.refresh_token:
            raise CredentialExpiredNoRefreshError(workspace_id)

        if await self.marker.is_set(workspace_id):
            # Another caller is refreshing or just did: wait once, re-read once
            logger.debug(
                "Refresh already in progress, waiting for new token",
                extra={"workspace_id": workspace_id}
            )
            await self._sleep(self.retry_delay)
            retried = await self.fetch_record(workspace_id)
            if retried is None:
                raise NoCredentialFoundError(workspace_id)
            return retried.access_token

        return await self._refresh(record, client_id, client_secret)

    async def _refresh(
        self,
        record: CredentialRecord,
        client_id: str,
        client_secret: str,
    ) -> str:
        workspace_id = record.workspace_id
        logger.debug("Refreshing expired token", extra={"workspace_id": workspace_id})

        await self.marker.raise_marker(workspace_id)
        try:
            response = await self.oauth_client.refresh_access_token(
                record.refresh_token, client_id, client_secret
            )
            if not response.access_token:
                raise OAuthRequestError(
                    "No access token in refresh response",
                    code="missing_access_token",
                )

            now = int(self._clock())
            expires_in = response.expires_in
            refreshed = dataclasses.replace(
                record,
                access_token=response.access_token,
                refresh_token=response.refresh_token or record.refresh_token,
                expires_at=now + expires_in if expires_in else None,
                cache_ttl_hint=expires_in or None,
            )
            await self.update_record(refreshed)
        except OAuthRequestError as e:
            await self._clear_marker(workspace_id)
            self.audit.log_error(
                workspace_id=workspace_id,
                workspace_name=record.workspace_name,
                error=str(e),
                metadata={"error_code": e.code, "status_code": e.status_code},
            )
            raise RefreshFailedError(
                f"Token refresh failed for workspace {workspace_id}: {e}",
                workspace_id=workspace_id,
                code=e.code,
                status_code=e.status_code,
            ) from e
        except Exception:
            # Store failures propagate as-is
            await self._clear_marker(workspace_id)
            raise

        self.audit.log(
            event_type=AuditEventType.CREDENTIAL_REFRESHED,
            workspace_id=workspace_id,
            workspace_name=refreshed.workspace_name,
            metadata={"new_expires_at": refreshed.expires_at},
        )
        logger.info(
            "Credential refreshed successfully",
            extra={"workspace_id": workspace_id, "new_expires_at": refreshed.expires_at}
        )
        return refreshed.access_token

    async def _clear_marker(self, workspace_id: str) -> None:
        try:
            await self.marker.clear(workspace_id)
        except Exception as e:
            # The marker's own TTL bounds how long a stale marker can linger
            logger.warning(
                "Failed to clear refresh marker",
                extra={"workspace_id": workspace_id, "error": str(e)}
            )

    async def update_record(self, record: CredentialRecord) -> None:
        """
        Persist a refreshed record and advertise it to concurrent callers.

        The marker stays raised for its full window so callers that raced
        this refresh re-read the new record instead of refreshing again.
        """
        await self.store.put(record)
        await self.cache.set(
            token_cache_key(record.workspace_id),
            record.to_cache_payload(),
            self.default_cache_ttl,
        )
        await self.marker.raise_marker(record.workspace_id)

    async def delete_record(self, workspace_id: str) -> bool:
        """Delete the durable record. The cached copy expires on its own."""
        return await self.store.delete(workspace_id)
