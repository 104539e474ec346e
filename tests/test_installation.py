"""
Installation tests: code exchange response -> stored credential.
"""

import logging
from unittest.mock import AsyncMock

import pytest

from slack_archive.config.oauth import OAuthClientConfig
from slack_archive.config.settings import TOKEN_DEFAULT_TTL
from slack_archive.credentials.installation import (
    InstallationError,
    InstallationService,
    record_from_oauth_response,
)
from slack_archive.credentials.lifecycle import token_cache_key
from slack_archive.credentials.models import CredentialRecord
from slack_archive.credentials.oauth_client import (
    OAuthAccessResponse,
    OAuthRequestError,
    SlackOAuthClient,
)
from slack_archive.credentials.redaction import CredentialLoggingFilter
from tests.helpers import NOW, WORKSPACE_ID


def _access_response(**overrides) -> OAuthAccessResponse:
    data = {
        "ok": True,
        "access_token": "test_access_token_not_real_001",
        "scope": "channels:history,channels:read",
        "bot_user_id": "U0BOT001",
        "team": {"id": WORKSPACE_ID, "name": "Test Workspace"},
        "refresh_token": "test_refresh_token_not_real_001",
        "expires_in": 43200,
    }
    data.update(overrides)
    return OAuthAccessResponse.model_validate(data)


class TestRecordFromOAuthResponse:

    def test_rotating_token(self):
        record = record_from_oauth_response(_access_response(), now=NOW)

        assert record.workspace_id == WORKSPACE_ID
        assert record.workspace_name == "Test Workspace"
        assert record.expires_at == NOW + 43200
        assert record.cache_ttl_hint == 43200
        assert record.refresh_token == "test_refresh_token_not_real_001"

    def test_non_rotating_token_never_expires(self):
        record = record_from_oauth_response(
            _access_response(refresh_token=None, expires_in=None), now=NOW
        )

        assert record.expires_at is None
        assert record.cache_ttl_hint is None
        assert record.can_refresh is False

    def test_missing_access_token(self):
        with pytest.raises(InstallationError, match="access_token"):
            record_from_oauth_response(_access_response(access_token=None))

    def test_missing_team(self):
        with pytest.raises(InstallationError, match="team.id"):
            record_from_oauth_response(_access_response(team=None))


class TestCompleteInstallation:

    @pytest.fixture
    def config(self):
        return OAuthClientConfig(
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="https://app.test/oauth/callback",
        )

    @pytest.mark.asyncio
    async def test_stores_and_caches_record(self, credential_store, cache, config):
        oauth_client = AsyncMock(spec=SlackOAuthClient)
        oauth_client.exchange_code.return_value = _access_response()
        service = InstallationService(credential_store, cache, oauth_client, clock=lambda: NOW)

        record = await service.complete_installation("auth-code", config)

        oauth_client.exchange_code.assert_awaited_once_with(
            "auth-code", "client-id", "client-secret", "https://app.test/oauth/callback"
        )
        assert await credential_store.get_latest(WORKSPACE_ID) == record
        cached = await cache.get(token_cache_key(WORKSPACE_ID))
        assert CredentialRecord.from_cache_payload(cached) == record
        assert cache.ttl_for(token_cache_key(WORKSPACE_ID)) == TOKEN_DEFAULT_TTL

    @pytest.mark.asyncio
    async def test_reinstall_overwrites_previous_credential(self, credential_store, cache, config):
        oauth_client = AsyncMock(spec=SlackOAuthClient)
        oauth_client.exchange_code.side_effect = [
            _access_response(),
            _access_response(access_token="test_access_token_not_real_005"),
        ]
        service = InstallationService(credential_store, cache, oauth_client, clock=lambda: NOW)

        await service.complete_installation("code-1", config)
        await service.complete_installation("code-2", config)

        stored = await credential_store.get_latest(WORKSPACE_ID)
        assert stored.access_token == "test_access_token_not_real_005"

    @pytest.mark.asyncio
    async def test_exchange_failure_stores_nothing(self, credential_store, cache, config):
        oauth_client = AsyncMock(spec=SlackOAuthClient)
        oauth_client.exchange_code.side_effect = OAuthRequestError(
            "Slack OAuth error: invalid_code", code="invalid_code"
        )
        service = InstallationService(credential_store, cache, oauth_client)

        with pytest.raises(OAuthRequestError):
            await service.complete_installation("bad-code", config)

        assert await credential_store.get_latest(WORKSPACE_ID) is None

    @pytest.mark.asyncio
    async def test_install_log_fields_survive_redaction(self, credential_store, cache, config):
        oauth_client = AsyncMock(spec=SlackOAuthClient)
        oauth_client.exchange_code.return_value = _access_response()
        service = InstallationService(credential_store, cache, oauth_client, clock=lambda: NOW)

        records = []
        handler = logging.Handler()
        handler.emit = records.append
        handler.addFilter(CredentialLoggingFilter())
        install_logger = logging.getLogger("slack_archive.credentials.installation")
        install_logger.addHandler(handler)
        install_logger.setLevel(logging.INFO)
        try:
            await service.complete_installation("auth-code", config)
        finally:
            install_logger.removeHandler(handler)

        [installed] = [r for r in records if r.getMessage() == "Workspace installed"]
        assert installed.workspace_id == WORKSPACE_ID
        assert installed.has_refresh_token is True
        assert "test_access_token" not in str(installed.__dict__)
