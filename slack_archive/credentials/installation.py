"""
Workspace installation: turn an OAuth code exchange into a stored credential.

A workspace keeps exactly one active credential set. Re-installing the app
overwrites the previous record, and the fresh record is pushed to the cache
so the next token lookup does not hit the store.
"""

import logging
import time
from typing import Callable, Optional

from slack_archive.cache import EphemeralCache
from slack_archive.config.oauth import OAuthClientConfig
from slack_archive.config.settings import TOKEN_DEFAULT_TTL
from slack_archive.credentials.lifecycle import token_cache_key
from slack_archive.credentials.models import CredentialRecord
from slack_archive.credentials.oauth_client import OAuthAccessResponse, SlackOAuthClient
from slack_archive.credentials.store import CredentialStore

logger = logging.getLogger(__name__)


class InstallationError(Exception):
    """Installation response cannot be turned into a credential."""
    pass


def record_from_oauth_response(
    response: OAuthAccessResponse,
    now: Optional[int] = None,
) -> CredentialRecord:
    """
    Build a CredentialRecord from an oauth.v2.access response.

    Tokens without expires_in never expire and carry no cache TTL hint.

    Raises:
        InstallationError: If access_token or team.id is missing
    """
    if not response.access_token:
        raise InstallationError("Missing access_token in OAuth response")
    if response.team is None or not response.team.id:
        raise InstallationError("Missing team.id in OAuth response")

    if now is None:
        now = int(time.time())
    expires_in = response.expires_in

    return CredentialRecord(
        workspace_id=response.team.id,
        access_token=response.access_token,
        refresh_token=response.refresh_token,
        expires_at=now + expires_in if expires_in else None,
        scope=response.scope,
        bot_user_id=response.bot_user_id,
        workspace_name=response.team.name,
        cache_ttl_hint=expires_in or None,
    )


class InstallationService:
    """Completes the OAuth install flow for a workspace."""

    def __init__(
        self,
        store: CredentialStore,
        cache: EphemeralCache,
        oauth_client: SlackOAuthClient,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cache = cache
        self.oauth_client = oauth_client
        self._clock = clock

    async def complete_installation(
        self,
        code: str,
        config: OAuthClientConfig,
        redirect_uri: Optional[str] = None,
    ) -> CredentialRecord:
        """
        Exchange an authorization code and persist the resulting credential.

        Args:
            code: Authorization code from the OAuth redirect
            config: Slack app client configuration
            redirect_uri: Overrides config.redirect_uri

        Returns:
            The stored CredentialRecord

        Raises:
            OAuthRequestError: If the code exchange fails
            InstallationError: If the response is incomplete
        """
        response = await self.oauth_client.exchange_code(
            code,
            config.client_id,
            config.client_secret,
            redirect_uri or config.redirect_uri,
        )
        record = record_from_oauth_response(response, now=int(self._clock()))

        await self.store.put(record)
        await self.cache.set(
            token_cache_key(record.workspace_id),
            record.to_cache_payload(),
            TOKEN_DEFAULT_TTL,
        )

        logger.info(
            "Workspace installed",
            extra={
                "workspace_id": record.workspace_id,
                "workspace_name": record.workspace_name,
                "has_refresh_token": record.can_refresh,
            }
        )
        return record
