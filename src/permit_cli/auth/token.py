from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..util.errors import AuthResolutionError

API_KEY_PREFIX = "permit_key_"
API_KEY_ENV = "PERMIT_API_KEY"


class TokenType(str, Enum):
    API_TOKEN = "api_token"
    ACCESS_TOKEN = "access_token"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AuthContext:
    """
    Resolved bearer token plus where it came from (cli|env|config).
    The token is opaque to everything but the API client.
    """

    token: str
    token_type: TokenType
    source: str


def token_type(token: str) -> TokenType:
    if token.startswith(API_KEY_PREFIX):
        return TokenType.API_TOKEN
    parts = token.split(".")
    if len(parts) == 3 and all(parts):
        return TokenType.ACCESS_TOKEN
    return TokenType.UNKNOWN


def resolve_auth(token: Optional[str], source: str = "cli") -> AuthContext:
    """
    Validate the already-merged token (CLI flag > PERMIT_API_KEY > config file).
    Interactive browser login is not supported; an API key or access token must be supplied.
    """
    token = (token or "").strip()
    if not token:
        raise AuthResolutionError(f"No auth token found. Provide --api-key or set {API_KEY_ENV}.")
    kind = token_type(token)
    if kind is TokenType.UNKNOWN:
        raise AuthResolutionError(
            "Invalid API Key. Please provide a valid API Key "
            f"(expected a '{API_KEY_PREFIX}...' key or an access token; source: {source})."
        )
    return AuthContext(token=token, token_type=kind, source=source)
