"""Flow state, token and onboarding session models."""

import time

from pydantic import BaseModel, Field, field_validator

from src.profile_import.core.models.profile import ExternalProfile


class OAuthState(BaseModel):
    """Correlation data round-tripped through the provider as the ``state`` value."""

    session_id: str = Field(description="Onboarding session identifier")
    redirect_path: str | None = Field(
        default=None, description="Sanitized post-flow redirect path"
    )
    issued_at: int = Field(description="Issue timestamp in epoch milliseconds")

    @field_validator("session_id")
    @classmethod
    def _session_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("session_id must be non-empty")
        return value

    @classmethod
    def issue(
        cls, session_id: str, redirect_path: str | None = None, now: float | None = None
    ) -> "OAuthState":
        """Create a state stamped with ``now`` (epoch seconds), defaulting to the current time."""
        current = time.time() if now is None else now
        return cls(
            session_id=session_id,
            redirect_path=redirect_path,
            issued_at=int(current * 1000),
        )

    def age_seconds(self, now: float | None = None) -> float:
        """Seconds elapsed since the state was issued."""
        current = time.time() if now is None else now
        return current - self.issued_at / 1000

    def is_fresh(self, max_age_seconds: int, now: float | None = None) -> bool:
        return self.age_seconds(now) <= max_age_seconds


class TokenSet(BaseModel):
    """Result of a successful authorization-code exchange."""

    access_token: str
    expires_in: int = Field(default=0, description="Access token lifetime in seconds")
    refresh_token: str | None = None
    scope: str = ""


class ImportSession(BaseModel):
    """Completed import stored for an onboarding session.

    Holds a keyed hash of the access token, never the token itself.
    """

    session_id: str = Field(description="Onboarding session identifier")
    profile_data: ExternalProfile = Field(description="Imported external profile")
    token_hash: str = Field(description="Non-reversible access token reference")
    created_at: int = Field(description="Creation timestamp")
    expires_at: int = Field(description="Expiration timestamp")

    @classmethod
    def create(
        cls,
        session_id: str,
        profile_data: ExternalProfile,
        token_hash: str,
        ttl_seconds: int = 86400,
    ) -> "ImportSession":
        """Create a new import session with timestamps."""
        now = int(time.time())
        return cls(
            session_id=session_id,
            profile_data=profile_data,
            token_hash=token_hash,
            created_at=now,
            expires_at=now + ttl_seconds,
        )

    def is_expired(self) -> bool:
        """Check if session is expired."""
        return time.time() > self.expires_at
