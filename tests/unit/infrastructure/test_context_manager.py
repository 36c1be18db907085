"""Unit tests for the configuration context."""

import asyncio

import pytest

from src.profile_import.runtime.config.config_data import ConfigData
from src.profile_import.runtime.context import (
    AppContext,
    get_config,
    get_context,
    with_context,
)


class TestContextManager:
    def test_default_context_available(self):
        context = get_context()

        assert isinstance(context, AppContext)
        assert isinstance(get_config(), ConfigData)
        assert context.config is get_config()

    def test_with_context_overrides_only_set_fields(self):
        original = get_config()
        override = ConfigData()
        override.provider.client_id = "override-client"

        with with_context(override):
            config = get_config()
            assert config.provider.client_id == "override-client"
            assert config.provider.token_endpoint == original.provider.token_endpoint
            assert config.app.environment == original.app.environment

        assert get_config() is original

    def test_nested_overrides(self):
        original_redirect = get_config().app.default_redirect_path
        level1 = ConfigData()
        level1.onboarding.state_ttl_seconds = 120

        level2 = ConfigData()
        level2.app.default_redirect_path = "/welcome"

        with with_context(level1):
            with with_context(level2):
                config = get_config()
                assert config.onboarding.state_ttl_seconds == 120
                assert config.app.default_redirect_path == "/welcome"

            assert get_config().app.default_redirect_path == original_redirect
            assert get_config().onboarding.state_ttl_seconds == 120

    def test_none_override_is_noop(self):
        original = get_config()

        with with_context(None):
            assert get_config() is original

    def test_rejects_non_config_override(self):
        with pytest.raises(ValueError):
            with with_context({"app": {}}):
                pass

    def test_context_restored_after_exception(self):
        original = get_config()
        override = ConfigData()
        override.provider.name = "temporary"

        with pytest.raises(RuntimeError):
            with with_context(override):
                raise RuntimeError("boom")

        assert get_config() is original

    @pytest.mark.asyncio
    async def test_context_isolated_between_tasks(self):
        async def read_provider_name(name: str) -> str:
            override = ConfigData()
            override.provider.name = name
            with with_context(override):
                await asyncio.sleep(0)
                return get_config().provider.name

        results = await asyncio.gather(
            read_provider_name("first"), read_provider_name("second")
        )

        assert results == ["first", "second"]
