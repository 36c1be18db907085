"""Security utilities for the external import flow."""

import base64
import binascii
import hashlib
import hmac
import json
from urllib.parse import urlparse

from pydantic import ValidationError

from src.profile_import.core.errors import MalformedState
from src.profile_import.core.models.session import OAuthState


def encode_state(state: OAuthState) -> str:
    """Encode an OAuth state as an opaque, URL-safe token.

    The token is only integrity-checked by comparison with the state cookie;
    it carries no secret and is not encrypted.

    Args:
        state: State to encode

    Returns:
        URL-safe base64 encoded JSON document without padding
    """
    payload = state.model_dump_json(exclude_none=True).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_state(token: str) -> OAuthState:
    """Decode a token produced by :func:`encode_state`.

    Raises:
        MalformedState: If the token is not base64, not JSON, or has the wrong shape
    """
    if not token:
        raise MalformedState("Empty state token")

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedState(f"State token is not decodable: {type(e).__name__}") from e

    if not isinstance(data, dict):
        raise MalformedState("State token does not contain an object")

    try:
        return OAuthState.model_validate(data)
    except ValidationError as e:
        raise MalformedState(
            f"State token has an unexpected shape ({e.error_count()} errors)"
        ) from e


def states_match(callback_state: str, cookie_state: str | None) -> bool:
    """Constant-time comparison of the callback state against the issued cookie."""
    if not cookie_state:
        return False
    return hmac.compare_digest(
        callback_state.encode("utf-8"), cookie_state.encode("utf-8")
    )


def hash_token(token: str, secret: str | None) -> str:
    """Derive a non-reversible reference for an access token.

    Args:
        token: Raw access token
        secret: HMAC key; a fixed development key is used when unset

    Returns:
        Hex encoded HMAC-SHA256 digest
    """
    key = secret.encode("utf-8") if secret else b"dev-secret"
    return hmac.new(key, token.encode("utf-8"), hashlib.sha256).hexdigest()


def sanitize_return_url(
    return_to: str | None, allowed_hosts: list[str] | None = None
) -> str | None:
    """Sanitize a caller-supplied redirect to prevent open redirects.

    Args:
        return_to: User-provided return path or URL
        allowed_hosts: Optional list of allowed hosts for absolute URLs

    Returns:
        The relative path or allowed absolute URL, or None when it is unusable
    """
    if not return_to:
        return None

    return_to = return_to.strip()

    # Relative paths only; "//host" is protocol-relative
    if return_to.startswith("/") and not return_to.startswith("//"):
        if all(ord(c) >= 32 for c in return_to) and "\\" not in return_to:
            return return_to

    if allowed_hosts and (
        return_to.startswith("http://") or return_to.startswith("https://")
    ):
        try:
            hostname = urlparse(return_to).hostname
        except ValueError:
            hostname = None
        if hostname in allowed_hosts:
            return return_to

    return None
