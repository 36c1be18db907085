"""FastAPI dependency implementations."""

from __future__ import annotations

import httpx
from fastapi import Request
from loguru import logger

from src.profile_import.api.http.app_data import ApplicationDependencies
from src.profile_import.core.services import (
    ImportFlowOrchestrator,
    ImportSessionService,
    ProfileFetcher,
    ProfileMapper,
    TokenExchangeClient,
)
from src.profile_import.core.storage import SessionStorage
from src.profile_import.runtime.config.config_data import ConfigData


def build_application_dependencies(
    config: ConfigData,
    session_storage: SessionStorage,
    http_client: httpx.AsyncClient,
) -> ApplicationDependencies:
    """Wire the import flow from configuration and process-scoped clients.

    Raises:
        RuntimeError: In production, when no token hash secret is configured
    """
    if not config.onboarding.token_hash_secret:
        if config.app.environment == "production":
            raise RuntimeError(
                "TOKEN_HASH_SECRET must be set in production; token references "
                "would otherwise be keyed with the development key"
            )
        logger.warning(
            "TOKEN_HASH_SECRET not set; using the development key for token references"
        )

    token_exchange_client = TokenExchangeClient(config.provider, http_client)
    profile_fetcher = ProfileFetcher(config.provider, http_client)
    profile_mapper = ProfileMapper(config.onboarding.medical_school_keywords)
    import_session_service = ImportSessionService(
        session_storage,
        ttl_seconds=config.onboarding.session_ttl_seconds,
        token_hash_secret=config.onboarding.token_hash_secret,
    )
    import_flow = ImportFlowOrchestrator(
        token_client=token_exchange_client,
        profile_fetcher=profile_fetcher,
        session_service=import_session_service,
        mapper=profile_mapper,
        app_config=config.app,
        onboarding_config=config.onboarding,
    )
    return ApplicationDependencies(
        session_storage=session_storage,
        http_client=http_client,
        token_exchange_client=token_exchange_client,
        profile_fetcher=profile_fetcher,
        profile_mapper=profile_mapper,
        import_session_service=import_session_service,
        import_flow=import_flow,
    )


def get_import_flow(request: Request) -> ImportFlowOrchestrator:
    """Get the import flow orchestrator instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.import_flow
