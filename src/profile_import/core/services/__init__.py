"""Core services exports."""

# Session Storage for testing
from src.profile_import.core.storage.session_storage import (
    InMemorySessionStorage,
    RedisSessionStorage,
)

# Flow
from .import_flow import CallbackOutcome, FlowState, ImportFlowOrchestrator, StartResult

# Session Services
from .import_session import ImportSessionService

# Provider clients
from .profile_fetcher import ExtendedProfileResult, ProfileFetcher
from .profile_mapper import ProfileMapper
from .token_exchange import TokenExchangeClient

__all__ = [
    # Flow
    "CallbackOutcome",
    "FlowState",
    "ImportFlowOrchestrator",
    "StartResult",
    # Session Services
    "ImportSessionService",
    # Provider clients
    "ExtendedProfileResult",
    "ProfileFetcher",
    "ProfileMapper",
    "TokenExchangeClient",
    # Session Storage for testing
    "InMemorySessionStorage",
    "RedisSessionStorage",
]
