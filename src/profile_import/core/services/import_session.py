from loguru import logger

from src.profile_import.core.errors import PersistFailed
from src.profile_import.core.models.profile import ExternalProfile
from src.profile_import.core.models.session import ImportSession, TokenSet
from src.profile_import.core.security import hash_token
from src.profile_import.core.storage.session_storage import SessionStorage

KEY_PREFIX = "import:"


class ImportSessionService:
    """Stores imported profiles under their onboarding session id.

    Writes are single-key upserts, so concurrent imports for one session
    resolve as last-writer-wins.
    """

    def __init__(
        self,
        session_storage: SessionStorage,
        ttl_seconds: int = 86400,
        token_hash_secret: str | None = None,
    ) -> None:
        self._storage = session_storage
        self._ttl_seconds = ttl_seconds
        self._token_hash_secret = token_hash_secret

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{KEY_PREFIX}{session_id}"

    async def store(
        self, session_id: str, profile: ExternalProfile, tokens: TokenSet
    ) -> ImportSession:
        """Persist an imported profile for an onboarding session.

        Args:
            session_id: Onboarding session identifier
            profile: Imported external profile
            tokens: Tokens from the exchange; only a keyed hash of the access token is kept

        Returns:
            The stored session record

        Raises:
            PersistFailed: If the storage backend rejects the write
        """
        record = ImportSession.create(
            session_id=session_id,
            profile_data=profile,
            token_hash=hash_token(tokens.access_token, self._token_hash_secret),
            ttl_seconds=self._ttl_seconds,
        )
        try:
            await self._storage.set(self._key(session_id), record, self._ttl_seconds)
        except RuntimeError as e:
            raise PersistFailed("Could not store imported profile", provider_message=str(e)) from e
        return record

    async def get(self, session_id: str) -> ImportSession | None:
        """Get a fresh import session.

        Expired records are deleted as a side effect and reported as missing.

        Raises:
            PersistFailed: If the storage backend is unavailable
        """
        key = self._key(session_id)
        try:
            record = await self._storage.get(key, ImportSession)
            if record is None:
                return None

            if record.is_expired():
                logger.info("Import session expired; removing it")
                await self._storage.delete(key)
                return None
        except RuntimeError as e:
            raise PersistFailed("Could not read imported profile", provider_message=str(e)) from e

        return record

    async def clear(self, session_id: str) -> None:
        """Delete an import session once onboarding has consumed it."""
        try:
            await self._storage.delete(self._key(session_id))
        except RuntimeError as e:
            raise PersistFailed("Could not clear imported profile", provider_message=str(e)) from e

    async def purge_expired(self) -> int:
        """Cleanup expired sessions from storage."""
        return await self._storage.cleanup_expired()
