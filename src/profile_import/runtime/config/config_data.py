"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field

DEFAULT_MEDICAL_SCHOOL_KEYWORDS = [
    "medicine",
    "medical",
    "md",
    "m.d.",
    "doctor",
    "physician",
    "medicina",
    "médico",
    "facultad de medicina",
]


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(default=["GET", "DELETE", "OPTIONS"])
    allow_headers: list[str] = Field(default=["*"])


class RedisConfig(BaseModel):
    """Redis configuration model."""

    enabled: bool = Field(default=True, description="Enable Redis session store")
    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    decode_responses: bool = Field(
        default=True, description="Decode Redis responses to strings"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url


class ExternalProviderConfig(BaseModel):
    """External identity provider (OAuth 2.0 / OpenID Connect) configuration."""

    name: str = Field(default="linkedin", description="Provider identifier used in logs")
    client_id: str = Field(default="", description="OAuth client ID")
    client_secret: str = Field(default="", description="OAuth client secret")
    redirect_uri: str = Field(
        default="", description="Callback URI registered with the provider"
    )
    authorization_endpoint: str = Field(
        default="https://www.linkedin.com/oauth/v2/authorization",
        description="Authorization endpoint URL",
    )
    token_endpoint: str = Field(
        default="https://www.linkedin.com/oauth/v2/accessToken",
        description="Token endpoint URL",
    )
    userinfo_endpoint: str = Field(
        default="https://api.linkedin.com/v2/userinfo",
        description="OpenID Connect userinfo endpoint URL",
    )
    profile_endpoint: str | None = Field(
        default="https://api.linkedin.com/v2/me",
        description="Extended profile endpoint (requires elevated API access)",
    )
    profile_projection: str | None = Field(
        default="(id,firstName,lastName,profilePicture(displayImage~:playableStreams),vanityName)",
        description="Projection passed to the extended profile endpoint",
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "profile", "email"],
        description="Scopes to request during authorization",
    )
    profile_url_template: str | None = Field(
        default="https://www.linkedin.com/in/{id}",
        description="Template used to derive a public profile URL from an id or vanity name",
    )
    timeout_seconds: float = Field(
        default=10.0, description="Timeout for outbound provider requests"
    )

    @property
    def is_configured(self) -> bool:
        """Whether the client credentials needed for the flow are present."""
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class OnboardingConfig(BaseModel):
    """Settings for the onboarding import flow."""

    state_cookie_name: str = Field(
        default="external_oauth_state", description="Cookie holding the issued state"
    )
    state_ttl_seconds: int = Field(
        default=600, description="Freshness window for an issued state (10 minutes)"
    )
    session_ttl_seconds: int = Field(
        default=86400, description="Lifetime of a completed import (24 hours)"
    )
    token_hash_secret: str | None = Field(
        default=None, description="HMAC key used to derive access token references"
    )
    medical_school_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MEDICAL_SCHOOL_KEYWORDS),
        description="Keywords identifying a medical school among education entries",
    )
    allowed_redirect_hosts: list[str] = Field(
        default_factory=list,
        description="Allowed hosts for absolute redirect URLs (empty = relative only)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str = Field(default="logs/app.log", description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    public_base_url: str = Field(
        default="", description="Prefix for post-flow redirects to the web front end"
    )
    default_redirect_path: str = Field(
        default="/physicians/onboard",
        description="Where the callback lands when the caller gave no redirect",
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )
    provider: ExternalProviderConfig = Field(
        default_factory=ExternalProviderConfig,
        description="External identity provider configuration",
    )
    onboarding: OnboardingConfig = Field(
        default_factory=OnboardingConfig, description="Onboarding import settings"
    )
