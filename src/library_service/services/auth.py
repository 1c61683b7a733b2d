"""
Authentication capability.

Tokens are issued and verified by an external auth service; this module only
asks it whether a bearer token is valid and maps the answer to a local user
account, provisioning the account the first time an identity is seen.
"""

import logging
from typing import Protocol

import httpx
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from ..config import ServiceConfig
from ..database.user_repository import UserRepository
from ..models.user import User

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Missing, invalid or unknown credentials (HTTP 401)."""


class PermissionDeniedError(Exception):
    """Authenticated caller lacks the role or ownership required (HTTP 403)."""


class AuthServiceError(Exception):
    """The auth service could not be reached or answered nonsense."""


class AuthUser(BaseModel):
    id: str
    email: str
    name: str | None = None


class AuthResult(BaseModel):
    valid: bool
    user: AuthUser | None = None


class AuthVerifier(Protocol):
    def verify(self, token: str) -> AuthResult: ...


class HttpAuthVerifier:
    """Verifies tokens with ``POST {auth_service_url}/verify-token``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "HttpAuthVerifier":
        return cls(config.auth_service_url, timeout=config.http_timeout_seconds)

    def verify(self, token: str) -> AuthResult:
        try:
            response = self._client.post("/verify-token", json={"token": token})
        except httpx.HTTPError as e:
            raise AuthServiceError(f"Auth service unreachable: {e}") from e

        if not response.is_success:
            logger.info("Auth service rejected token with HTTP %s", response.status_code)
            return AuthResult(valid=False)

        try:
            return AuthResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthServiceError("Auth service returned an unexpected body") from e

    def close(self) -> None:
        self._client.close()


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must use the Bearer scheme")
    return token.strip()


def resolve_principal(
    verifier: AuthVerifier, token: str, session: Session, config: ServiceConfig
) -> User:
    """
    Verify ``token`` and return the matching local user.

    Raises:
        AuthenticationError: If the token is invalid or the account is disabled
    """
    result = verifier.verify(token)
    if not result.valid or result.user is None:
        raise AuthenticationError("Invalid token")

    users = UserRepository(session, default_max_checkouts=config.default_max_checkouts)
    db_user = users.provision(result.user.id, result.user.email, result.user.name or "")

    if not db_user.is_active:
        raise AuthenticationError(f"User {db_user.id} is disabled")

    return User.model_validate(db_user)
