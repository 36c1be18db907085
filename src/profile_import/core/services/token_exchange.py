"""Authorization-code exchange against the external provider's token endpoint."""

from urllib.parse import urlencode

import httpx
from loguru import logger

from src.profile_import.core.errors import ConfigurationMissing, ExchangeFailed
from src.profile_import.core.models.session import TokenSet
from src.profile_import.runtime.config.config_data import ExternalProviderConfig


class TokenExchangeClient:
    """Builds authorization URLs and trades authorization codes for tokens.

    Authorization codes are single-use, so a failed exchange is never retried;
    the user has to start the flow again.
    """

    def __init__(
        self, provider_config: ExternalProviderConfig, http_client: httpx.AsyncClient
    ) -> None:
        self._config = provider_config
        self._http = http_client

    @property
    def provider_name(self) -> str:
        return self._config.name

    def is_configured(self) -> bool:
        return self._config.is_configured

    def _require_configured(self) -> None:
        if not self._config.is_configured:
            raise ConfigurationMissing(
                f"Provider '{self._config.name}' is missing client_id, client_secret or redirect_uri"
            )

    def authorization_url(self, state_token: str) -> str:
        """Build the provider authorization URL for an encoded state.

        Raises:
            ConfigurationMissing: If client credentials are not configured
        """
        self._require_configured()
        params = {
            "response_type": "code",
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "state": state_token,
            "scope": " ".join(self._config.scopes),
        }
        return f"{self._config.authorization_endpoint}?{urlencode(params)}"

    async def exchange(self, authorization_code: str) -> TokenSet:
        """Exchange an authorization code for an access token.

        Args:
            authorization_code: Code received on the callback

        Returns:
            Token set issued by the provider

        Raises:
            ConfigurationMissing: If client credentials are not configured
            ExchangeFailed: On any transport error or non-success response
        """
        self._require_configured()

        token_data = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "redirect_uri": self._config.redirect_uri,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            response = await self._http.post(
                self._config.token_endpoint,
                data=token_data,
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except httpx.RequestError as e:
            logger.error(
                "Token exchange request to {} failed: {}", self._config.name, type(e).__name__
            )
            raise ExchangeFailed(
                "Token endpoint unreachable", provider_message=str(e)
            ) from e

        if not response.is_success:
            provider_message = _provider_error_description(response)
            logger.error(
                "Token exchange rejected by {}: status={} error={}",
                self._config.name,
                response.status_code,
                provider_message,
            )
            raise ExchangeFailed(
                f"Token exchange failed with status {response.status_code}",
                provider_message=provider_message,
            )

        try:
            payload = response.json()
            return TokenSet(
                access_token=payload["access_token"],
                expires_in=payload.get("expires_in") or 0,
                refresh_token=payload.get("refresh_token"),
                scope=payload.get("scope") or "",
            )
        except (ValueError, KeyError, TypeError) as e:
            raise ExchangeFailed(
                "Token response is missing an access token",
                provider_message=type(e).__name__,
            ) from e


def _provider_error_description(response: httpx.Response) -> str:
    """Extract the provider's error description for logs."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        return str(
            body.get("error_description")
            or body.get("error")
            or body.get("message")
            or response.reason_phrase
        )
    return response.reason_phrase or f"HTTP {response.status_code}"
