"""Orchestration of the two-request external import flow.

``start`` issues a state and the provider authorization URL. ``complete``
validates the callback, exchanges the code, fetches and stores the profile,
and always answers with a redirect back to the web front end.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from loguru import logger

from src.profile_import.core.errors import (
    ConfigurationMissing,
    ImportFlowError,
    MalformedState,
    MissingAuthorizationCode,
    ProviderAuthorizationError,
    StateExpired,
    StateIntegrityError,
    StateMismatch,
)
from src.profile_import.core.models.profile import ExternalProfile, MappedDomainProfile
from src.profile_import.core.models.session import OAuthState
from src.profile_import.core.security import (
    decode_state,
    encode_state,
    sanitize_return_url,
    states_match,
)
from src.profile_import.core.services.import_session import ImportSessionService
from src.profile_import.core.services.profile_fetcher import ProfileFetcher
from src.profile_import.core.services.profile_mapper import ProfileMapper
from src.profile_import.core.services.token_exchange import TokenExchangeClient
from src.profile_import.runtime.config.config_data import AppConfig, OnboardingConfig


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_PROVIDER_REDIRECT = "awaiting_provider_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    FETCHING_PROFILE = "fetching_profile"
    MAPPING = "mapping"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass(frozen=True)
class StartResult:
    authorization_url: str
    state_token: str
    state: OAuthState


@dataclass(frozen=True)
class CallbackOutcome:
    """Terminal outcome of a callback; success and failure share one shape."""

    redirect_url: str
    final_state: FlowState
    session_id: str | None = None
    display_name: str | None = None
    error: ImportFlowError | None = None

    @property
    def succeeded(self) -> bool:
        return self.final_state is FlowState.COMPLETED


@dataclass(frozen=True)
class ImportedProfile:
    profile: ExternalProfile
    mapped: MappedDomainProfile


class _FlowTracker:
    """Records and logs state transitions for one callback."""

    def __init__(self, state: FlowState) -> None:
        self.state = state

    def advance(self, new_state: FlowState) -> None:
        logger.bind(flow_state=new_state.value).info(
            "Import flow {} -> {}", self.state.value, new_state.value
        )
        self.state = new_state


class ImportFlowOrchestrator:
    def __init__(
        self,
        token_client: TokenExchangeClient,
        profile_fetcher: ProfileFetcher,
        session_service: ImportSessionService,
        mapper: ProfileMapper,
        app_config: AppConfig,
        onboarding_config: OnboardingConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tokens = token_client
        self._fetcher = profile_fetcher
        self._sessions = session_service
        self._mapper = mapper
        self._app = app_config
        self._onboarding = onboarding_config
        self._clock = clock

    @property
    def state_cookie_name(self) -> str:
        return self._onboarding.state_cookie_name

    @property
    def state_ttl_seconds(self) -> int:
        return self._onboarding.state_ttl_seconds

    def is_configured(self) -> bool:
        return self._tokens.is_configured()

    # --- start request ---

    def start(self, session_id: str, redirect: str | None = None) -> StartResult:
        """Issue a state for ``session_id`` and build the provider redirect.

        Raises:
            ConfigurationMissing: Before anything is built, if the provider is unconfigured
            MalformedState: If ``session_id`` is blank
        """
        if not self.is_configured():
            raise ConfigurationMissing("External provider is not configured")

        if not session_id or not session_id.strip():
            raise MalformedState("session_id is required")

        redirect_path = sanitize_return_url(
            redirect, allowed_hosts=self._onboarding.allowed_redirect_hosts
        )
        if redirect and redirect_path is None:
            logger.warning("Ignoring unsafe redirect target on import start")

        state = OAuthState.issue(session_id, redirect_path, now=self._clock())
        state_token = encode_state(state)
        authorization_url = self._tokens.authorization_url(state_token)

        logger.bind(flow_state=FlowState.AWAITING_PROVIDER_REDIRECT.value).info(
            "Redirecting to {} for profile import", self._tokens.provider_name
        )
        return StartResult(
            authorization_url=authorization_url, state_token=state_token, state=state
        )

    # --- callback request ---

    def validate_state(self, state_param: str | None, cookie_state: str | None) -> OAuthState:
        """Check the callback state against the issued cookie and freshness window.

        Raises:
            MalformedState: If the state is missing or cannot be decoded
            StateMismatch: If the cookie is absent or differs from the callback state
            StateExpired: If the state is older than the freshness window
        """
        if not state_param:
            raise MalformedState("Missing state parameter")

        if not states_match(state_param, cookie_state):
            raise StateMismatch("Callback state does not match the issued state cookie")

        state = decode_state(state_param)

        if not state.is_fresh(self._onboarding.state_ttl_seconds, now=self._clock()):
            raise StateExpired(
                f"State issued {int(state.age_seconds(self._clock()))}s ago"
            )

        return state

    async def complete(
        self,
        *,
        code: str | None,
        state: str | None,
        cookie_state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> CallbackOutcome:
        """Run the callback half of the flow.

        Never raises ImportFlowError: every failure becomes an error redirect.
        """
        tracker = _FlowTracker(FlowState.AWAITING_CALLBACK)
        oauth_state: OAuthState | None = None

        try:
            if error:
                raise ProviderAuthorizationError(
                    f"Provider returned error '{error}'",
                    provider_message=error_description or error,
                )

            oauth_state = self.validate_state(state, cookie_state)

            if not code:
                raise MissingAuthorizationCode("Callback carried no authorization code")

            tracker.advance(FlowState.EXCHANGING)
            tokens = await self._tokens.exchange(code)

            tracker.advance(FlowState.FETCHING_PROFILE)
            profile = await self._fetcher.fetch(tokens.access_token)

            # Only the external profile is stored; readers re-map it
            tracker.advance(FlowState.MAPPING)
            mapped = self._mapper.map(profile)
            logger.debug(
                "Mapped imported profile fields: {}", sorted(mapped.to_response())
            )

            tracker.advance(FlowState.PERSISTING)
            await self._sessions.store(oauth_state.session_id, profile, tokens)

            tracker.advance(FlowState.COMPLETED)
        except ImportFlowError as e:
            self._log_failure(e, tracker.state)
            tracker.advance(FlowState.ERRORED)
            return CallbackOutcome(
                redirect_url=self.error_redirect_url(e, oauth_state),
                final_state=FlowState.ERRORED,
                session_id=oauth_state.session_id if oauth_state else None,
                error=e,
            )

        logger.bind(flow_state=FlowState.COMPLETED.value).info(
            "Imported external profile for onboarding session"
        )
        return CallbackOutcome(
            redirect_url=self.success_redirect_url(oauth_state, profile.display_name),
            final_state=FlowState.COMPLETED,
            session_id=oauth_state.session_id,
            display_name=profile.display_name or None,
        )

    def _log_failure(self, error: ImportFlowError, at_state: FlowState) -> None:
        log = logger.bind(flow_state=at_state.value, error_code=error.code)
        if isinstance(error, StateIntegrityError):
            # Potential forgery or stale tab; no provider details involved
            log.warning("Import callback rejected: {}", error.message)
        elif isinstance(error, ConfigurationMissing):
            log.info("Import callback received while provider is not configured")
        else:
            log.error(
                "Import flow failed: {} (provider: {})",
                error.message,
                error.provider_message or "-",
            )

    # --- redirects ---

    def _redirect_url(self, path: str | None, params: dict[str, str]) -> str:
        target = path or self._app.default_redirect_path
        if not target.startswith(("http://", "https://")):
            target = f"{self._app.public_base_url.rstrip('/')}{target}"
        separator = "&" if "?" in target else "?"
        return f"{target}{separator}{urlencode(params)}"

    def success_redirect_url(self, state: OAuthState, display_name: str | None) -> str:
        params = {"imported": "connected", "session": state.session_id}
        if display_name:
            params["name"] = display_name
        return self._redirect_url(state.redirect_path, params)

    def error_redirect_url(
        self, error: ImportFlowError, state: OAuthState | None = None
    ) -> str:
        """Build the error redirect; provider messages never reach the query string."""
        params = {
            "imported": "error",
            "error": error.user_message,
            "error_code": error.code,
        }
        return self._redirect_url(state.redirect_path if state else None, params)

    # --- profile read ---

    async def load_import(self, session_id: str) -> ImportedProfile | None:
        """Read a stored import and map it. None when missing or expired."""
        record = await self._sessions.get(session_id)
        if record is None:
            return None
        return ImportedProfile(
            profile=record.profile_data, mapped=self._mapper.map(record.profile_data)
        )

    async def discard_import(self, session_id: str) -> None:
        await self._sessions.clear(session_id)
