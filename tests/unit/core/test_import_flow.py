"""Unit tests for the import flow orchestrator."""

from urllib.parse import parse_qs, urlparse

import pytest

from src.profile_import.core.errors import (
    ConfigurationMissing,
    ExchangeFailed,
    MalformedState,
    MissingAuthorizationCode,
    PersistFailed,
    ProfileFetchFailed,
    ProviderAuthorizationError,
    StateExpired,
    StateMismatch,
)
from src.profile_import.core.models import OAuthState
from src.profile_import.core.security import encode_state
from src.profile_import.core.services import FlowState
from tests.fixtures.provider import (
    PROFILE_PATH,
    TOKEN_PATH,
    USERINFO_PATH,
)


def _query(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


class TestStart:
    def test_builds_authorization_url_with_state(self, orchestrator, clock):
        result = orchestrator.start("sess-1", redirect="/physicians/onboard?step=2")

        assert result.state == OAuthState(
            session_id="sess-1",
            redirect_path="/physicians/onboard?step=2",
            issued_at=int(clock.now * 1000),
        )
        assert result.state_token == encode_state(result.state)
        assert _query(result.authorization_url)["state"] == result.state_token

    def test_unsafe_redirect_is_dropped(self, orchestrator):
        result = orchestrator.start("sess-1", redirect="https://evil.test/phish")

        assert result.state.redirect_path is None

    def test_allowed_absolute_redirect_kept(self, orchestrator):
        result = orchestrator.start("sess-1", redirect="https://app.test/onboard")

        assert result.state.redirect_path == "https://app.test/onboard"

    def test_blank_session_id_rejected(self, orchestrator):
        with pytest.raises(MalformedState):
            orchestrator.start("   ")

    def test_unconfigured_provider_raises_before_building(
        self, build_orchestrator, fake_provider, unconfigured_provider_config
    ):
        orchestrator = build_orchestrator(fake_provider, config=unconfigured_provider_config)

        assert orchestrator.is_configured() is False
        with pytest.raises(ConfigurationMissing):
            orchestrator.start("")


class TestValidateState:
    def test_accepts_matching_fresh_state(self, orchestrator):
        token = orchestrator.start("sess-1").state_token

        state = orchestrator.validate_state(token, token)

        assert state.session_id == "sess-1"

    def test_missing_state_is_malformed(self, orchestrator):
        with pytest.raises(MalformedState):
            orchestrator.validate_state(None, "cookie")

    def test_mismatch_checked_before_decoding(self, orchestrator):
        with pytest.raises(StateMismatch):
            orchestrator.validate_state("garbage", "other-garbage")

    def test_matching_but_undecodable_state_is_malformed(self, orchestrator):
        with pytest.raises(MalformedState):
            orchestrator.validate_state("garbage", "garbage")

    def test_expired_state(self, orchestrator, clock):
        token = orchestrator.start("sess-1").state_token
        clock.advance(601)

        with pytest.raises(StateExpired):
            orchestrator.validate_state(token, token)

    def test_state_at_window_edge_is_fresh(self, orchestrator, clock):
        token = orchestrator.start("sess-1").state_token
        clock.advance(600)

        assert orchestrator.validate_state(token, token).session_id == "sess-1"


class TestComplete:
    @pytest.mark.asyncio
    async def test_successful_import(self, orchestrator, fake_provider, import_session_service):
        token = orchestrator.start("sess-1", redirect="/physicians/onboard").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert outcome.succeeded
        assert outcome.final_state is FlowState.COMPLETED
        assert outcome.session_id == "sess-1"
        assert outcome.display_name == "Jane Doe"

        parsed = urlparse(outcome.redirect_url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://app.test/physicians/onboard"
        )
        assert _query(outcome.redirect_url) == {
            "imported": "connected",
            "session": "sess-1",
            "name": "Jane Doe",
        }

        record = await import_session_service.get("sess-1")
        assert record.profile_data.external_id == "abc123"
        assert len(record.profile_data.education) == 2

    @pytest.mark.asyncio
    async def test_redirect_keeps_existing_query(self, orchestrator):
        token = orchestrator.start("sess-1", redirect="/onboard?step=2").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert outcome.redirect_url.startswith("https://app.test/onboard?step=2&imported=connected")

    @pytest.mark.asyncio
    async def test_default_redirect_path(self, orchestrator):
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert urlparse(outcome.redirect_url).path == "/physicians/onboard"

    @pytest.mark.asyncio
    async def test_basic_profile_only_still_succeeds(
        self, build_orchestrator, basic_only_provider, import_session_service
    ):
        orchestrator = build_orchestrator(basic_only_provider)
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert outcome.succeeded
        record = await import_session_service.get("sess-1")
        assert record.profile_data.education is None

    @pytest.mark.asyncio
    async def test_state_mismatch_never_exchanges(self, orchestrator, fake_provider):
        token = orchestrator.start("sess-1").state_token
        forged = orchestrator.start("sess-2").state_token

        outcome = await orchestrator.complete(code="auth-code", state=forged, cookie_state=token)

        assert not outcome.succeeded
        assert isinstance(outcome.error, StateMismatch)
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_missing_cookie_is_mismatch(self, orchestrator, fake_provider):
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=None)

        assert isinstance(outcome.error, StateMismatch)
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_expired_state_never_exchanges(self, orchestrator, fake_provider, clock):
        token = orchestrator.start("sess-1", redirect="/onboard").state_token
        clock.advance(11 * 60)

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert isinstance(outcome.error, StateExpired)
        assert outcome.final_state is FlowState.ERRORED
        assert fake_provider.requests == []
        assert _query(outcome.redirect_url) == {
            "imported": "error",
            "error": "Your session expired, please try again.",
            "error_code": "state_expired",
        }
        # Expired states fall back to the default redirect
        assert urlparse(outcome.redirect_url).path == "/physicians/onboard"

    @pytest.mark.asyncio
    async def test_provider_error_hides_description(self, orchestrator, fake_provider):
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(
            code=None,
            state=token,
            cookie_state=token,
            error="user_cancelled_authorize",
            error_description="The user cancelled the authorization",
        )

        assert isinstance(outcome.error, ProviderAuthorizationError)
        assert outcome.error.provider_message == "The user cancelled the authorization"
        assert "cancelled" not in outcome.redirect_url
        assert _query(outcome.redirect_url)["error_code"] == "provider_error"
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_missing_code(self, orchestrator, fake_provider):
        token = orchestrator.start("sess-1", redirect="/onboard").state_token

        outcome = await orchestrator.complete(code=None, state=token, cookie_state=token)

        assert isinstance(outcome.error, MissingAuthorizationCode)
        assert outcome.session_id == "sess-1"
        assert urlparse(outcome.redirect_url).path == "/onboard"
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_exchange_failure(self, orchestrator, fake_provider, import_session_service):
        fake_provider.respond(TOKEN_PATH, 400, {"error": "invalid_grant"})
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert isinstance(outcome.error, ExchangeFailed)
        assert "invalid_grant" not in outcome.redirect_url
        assert fake_provider.requests_to(USERINFO_PATH) == []
        assert await import_session_service.get("sess-1") is None

    @pytest.mark.asyncio
    async def test_basic_profile_failure(self, orchestrator, fake_provider, import_session_service):
        fake_provider.respond(USERINFO_PATH, 500, {"message": "internal"})
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert isinstance(outcome.error, ProfileFetchFailed)
        assert _query(outcome.redirect_url)["error_code"] == "profile_fetch_failed"
        assert await import_session_service.get("sess-1") is None

    @pytest.mark.asyncio
    async def test_malformed_userinfo_claim_keeps_caller_redirect(
        self, orchestrator, fake_provider, import_session_service
    ):
        fake_provider.respond(
            USERINFO_PATH, 200, {"sub": "abc123", "email": {"value": "jane@example.com"}}
        )
        token = orchestrator.start("sess-1", redirect="/custom/path").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert outcome.final_state is FlowState.ERRORED
        assert isinstance(outcome.error, ProfileFetchFailed)
        assert urlparse(outcome.redirect_url).path == "/custom/path"
        assert _query(outcome.redirect_url)["error_code"] == "profile_fetch_failed"
        assert await import_session_service.get("sess-1") is None

    @pytest.mark.asyncio
    async def test_extended_failure_is_absorbed(self, orchestrator, fake_provider):
        fake_provider.unreachable.add(PROFILE_PATH)
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_persist_failure(self, orchestrator, session_storage, monkeypatch):
        async def failing_set(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(session_storage, "set", failing_set)
        token = orchestrator.start("sess-1").state_token

        outcome = await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        assert isinstance(outcome.error, PersistFailed)
        assert _query(outcome.redirect_url) == {
            "imported": "error",
            "error": "Could not complete the connection, please try again.",
            "error_code": "persist_failed",
        }

    @pytest.mark.asyncio
    async def test_malformed_state(self, orchestrator):
        outcome = await orchestrator.complete(code="auth-code", state=None, cookie_state=None)

        assert isinstance(outcome.error, MalformedState)
        assert outcome.session_id is None


class TestProfileRead:
    @pytest.mark.asyncio
    async def test_load_import_maps_stored_profile(self, orchestrator):
        token = orchestrator.start("sess-1").state_token
        await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        imported = await orchestrator.load_import("sess-1")

        assert imported.profile.display_name == "Jane Doe"
        assert imported.mapped.medical_school == "Harvard Medical School"
        assert imported.mapped.current_institutions == ["General Hospital"]

    @pytest.mark.asyncio
    async def test_load_import_missing(self, orchestrator):
        assert await orchestrator.load_import("unknown") is None

    @pytest.mark.asyncio
    async def test_discard_import(self, orchestrator):
        token = orchestrator.start("sess-1").state_token
        await orchestrator.complete(code="auth-code", state=token, cookie_state=token)

        await orchestrator.discard_import("sess-1")

        assert await orchestrator.load_import("sess-1") is None


class TestRedirects:
    def test_error_redirect_without_state_uses_default(self, orchestrator):
        url = orchestrator.error_redirect_url(ExchangeFailed("boom"))

        assert url.startswith("https://app.test/physicians/onboard?")
        assert _query(url)["error_code"] == "exchange_failed"

    def test_success_redirect_without_display_name(self, orchestrator):
        state = OAuthState(session_id="sess-1", issued_at=0)

        assert _query(orchestrator.success_redirect_url(state, None)) == {
            "imported": "connected",
            "session": "sess-1",
        }

    def test_trailing_slash_on_base_url_is_not_doubled(self, orchestrator, app_config):
        app_config.public_base_url = "https://app.test/"
        state = OAuthState(session_id="sess-1", redirect_path="/onboard", issued_at=0)

        url = orchestrator.success_redirect_url(state, None)

        assert url.startswith("https://app.test/onboard?")
        assert urlparse(orchestrator.error_redirect_url(ExchangeFailed("boom"))).path == (
            "/physicians/onboard"
        )
