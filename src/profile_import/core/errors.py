"""Error hierarchy for the external profile import flow.

Every error carries:
- ``code``: stable identifier, logged and echoed as ``error_code`` on redirects
- ``user_message``: generic text that is safe to show to the end user
- ``provider_message``: provider diagnostics for server logs only

The callback handler turns any ImportFlowError into the same error redirect,
so the calling UI only has one failure contract to handle.
"""

_RETRY_MESSAGE = "Your session expired, please try again."
_PROVIDER_MESSAGE = "Authorization with the provider failed."
_GENERIC_MESSAGE = "Could not complete the connection, please try again."


class ImportFlowError(Exception):
    """Base class for all import flow errors."""

    code = "import_failed"
    user_message = _GENERIC_MESSAGE

    def __init__(self, message: str, provider_message: str | None = None) -> None:
        self.message = message
        self.provider_message = provider_message
        super().__init__(message)


class ConfigurationMissing(ImportFlowError):
    """Provider credentials are not configured for this deployment."""

    code = "not_configured"
    user_message = "Profile import is not available."


# Client integrity failures


class StateIntegrityError(ImportFlowError):
    """The callback could not be tied to the request that started it."""

    user_message = _RETRY_MESSAGE


class MalformedState(StateIntegrityError):
    code = "malformed_state"


class StateMismatch(StateIntegrityError):
    """Callback state differs from the issued cookie; possible forgery."""

    code = "state_mismatch"


class StateExpired(StateIntegrityError):
    code = "state_expired"


# Provider failures


class ProviderAuthorizationError(ImportFlowError):
    """The provider redirected back with an ``error`` parameter."""

    code = "provider_error"
    user_message = _PROVIDER_MESSAGE


class MissingAuthorizationCode(ImportFlowError):
    code = "missing_code"
    user_message = _PROVIDER_MESSAGE


class ExchangeFailed(ImportFlowError):
    """Authorization code could not be traded for an access token. Never retried."""

    code = "exchange_failed"


class ProfileFetchFailed(ImportFlowError):
    code = "profile_fetch_failed"


# Infrastructure failures


class PersistFailed(ImportFlowError):
    """The onboarding session store is unavailable."""

    code = "persist_failed"
