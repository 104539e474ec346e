"""
Slack OAuth v2 token endpoint client.

Two grants are used against https://slack.com/api/oauth.v2.access:
- authorization_code: exchange the installation code for tokens
- refresh_token: rotate an expiring bot token

Both requests are form-encoded POSTs. A non-2xx status, an `ok: false`
payload, a timeout and a transport error are all reported as
OAuthRequestError.

SECURITY: request bodies and token fields are never logged.
"""

import logging
from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from slack_archive.config.settings import REFRESH_TIMEOUT_SECONDS, SLACK_OAUTH_URL

logger = logging.getLogger(__name__)


class OAuthRequestError(Exception):
    """Error returned by, or while reaching, the Slack token endpoint."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class RefreshTokenResponse(BaseModel):
    """Token endpoint response to a refresh_token grant."""
    ok: bool
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[str] = None


class OAuthTeam(BaseModel):
    id: str
    name: Optional[str] = None


class OAuthAccessResponse(BaseModel):
    """Token endpoint response to an installation code exchange."""
    ok: bool
    access_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    bot_user_id: Optional[str] = None
    app_id: Optional[str] = None
    team: Optional[OAuthTeam] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[str] = None


ResponseT = TypeVar("ResponseT", RefreshTokenResponse, OAuthAccessResponse)


class SlackOAuthClient:
    """
    Async client for the Slack token endpoint.

    A caller-supplied httpx.AsyncClient is reused and left open; otherwise a
    short-lived client is created per request.
    """

    def __init__(
        self,
        token_url: str = SLACK_OAUTH_URL,
        timeout: float = REFRESH_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.token_url = token_url
        self.timeout = timeout
        self._http_client = http_client

    async def refresh_access_token(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str,
    ) -> RefreshTokenResponse:
        """
        Exchange a refresh token for a new access token.

        Returns:
            RefreshTokenResponse with ok=True

        Raises:
            OAuthRequestError: If the refresh fails for any reason
        """
        return await self._post_form(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
            },
            RefreshTokenResponse,
            operation="refresh",
        )

    async def exchange_code(
        self,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: Optional[str] = None,
    ) -> OAuthAccessResponse:
        """
        Exchange an installation authorization code for tokens.

        Raises:
            OAuthRequestError: If the exchange fails for any reason
        """
        form = {
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        if redirect_uri:
            form["redirect_uri"] = redirect_uri
        return await self._post_form(form, OAuthAccessResponse, operation="exchange_code")

    async def _post_form(
        self,
        form: dict,
        response_model: Type[ResponseT],
        operation: str,
    ) -> ResponseT:
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.token_url, data=form, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.token_url, data=form)
        except httpx.TimeoutException as e:
            logger.warning(
                "Slack OAuth request timed out",
                extra={"operation": operation, "timeout": self.timeout}
            )
            raise OAuthRequestError(
                f"Slack OAuth request timed out after {self.timeout}s",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            logger.warning(
                "Slack OAuth request error",
                extra={"operation": operation, "error_type": type(e).__name__}
            )
            raise OAuthRequestError(
                f"Slack OAuth request failed: {type(e).__name__}",
                code="request_error",
            ) from e

        if not response.is_success:
            logger.warning(
                "Slack OAuth API HTTP error",
                extra={"operation": operation, "status_code": response.status_code}
            )
            raise OAuthRequestError(
                f"Slack OAuth API returned status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response_model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise OAuthRequestError(
                "Slack OAuth API returned an invalid payload",
                code="invalid_response",
                status_code=response.status_code,
            ) from e

        if not data.ok:
            error = data.error or "unknown_error"
            logger.warning(
                "Slack OAuth error response",
                extra={"operation": operation, "error_code": error}
            )
            raise OAuthRequestError(
                f"Slack OAuth error: {error}",
                code=error,
                status_code=response.status_code,
            )

        return data
