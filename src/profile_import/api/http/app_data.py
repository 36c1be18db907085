from dataclasses import dataclass

import httpx

from src.profile_import.core.services import (
    ImportFlowOrchestrator,
    ImportSessionService,
    ProfileFetcher,
    ProfileMapper,
    TokenExchangeClient,
)
from src.profile_import.core.storage import SessionStorage


@dataclass
class ApplicationDependencies:
    session_storage: SessionStorage
    http_client: httpx.AsyncClient
    token_exchange_client: TokenExchangeClient
    profile_fetcher: ProfileFetcher
    profile_mapper: ProfileMapper
    import_session_service: ImportSessionService
    import_flow: ImportFlowOrchestrator
