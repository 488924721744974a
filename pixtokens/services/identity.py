"""
Identity Resolution - Bearer credential to authenticated user.

One capability (IdentityResolver) backed by two strategies:
1. Provider round-trip: ask the auth server who owns the access token.
2. Claims fallback: verify the JWT locally with the shared secret when
   the round-trip fails, accepting it only while unexpired.
"""

import re
from typing import Any, Protocol

import httpx
import jwt
from structlog import get_logger

from pixtokens.exceptions import IdentityProviderUnavailableError, UnauthorizedError
from pixtokens.models.domain import AuthenticatedUser

logger = get_logger(__name__)

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def extract_bearer_token(authorization: str | None) -> str:
    """
    Strip the Bearer scheme from an Authorization header.

    Raises:
        UnauthorizedError: Header missing or empty
    """
    token = _BEARER_PREFIX.sub("", authorization or "").strip()
    if not token:
        raise UnauthorizedError(reason="missing_authorization_header")
    return token


class IdentityStrategy(Protocol):
    """A way of turning an access token into a user."""

    name: str

    async def resolve(self, token: str) -> AuthenticatedUser:
        """
        Resolve the token.

        Raises:
            UnauthorizedError: Token cannot be resolved
        """
        ...


class ProviderIdentityStrategy:
    """Round-trip to a Supabase-compatible /auth/v1/user endpoint."""

    name = "provider"

    def __init__(
        self,
        auth_url: str,
        api_key: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.user_url = f"{auth_url.rstrip('/')}/auth/v1/user"
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def resolve(self, token: str) -> AuthenticatedUser:
        try:
            response = await self.http_client.get(
                self.user_url,
                headers={"Authorization": f"Bearer {token}", "apikey": self.api_key},
            )
        except httpx.HTTPError as exc:
            logger.warning("identity_provider_unreachable", error=str(exc))
            raise IdentityProviderUnavailableError(
                f"identity provider unreachable: {exc}"
            ) from exc

        if response.status_code >= 500:
            logger.warning("identity_provider_error", status=response.status_code)
            raise IdentityProviderUnavailableError(
                f"identity provider returned HTTP {response.status_code}"
            )

        if response.status_code != 200:
            logger.info("identity_provider_rejected_token", status=response.status_code)
            raise UnauthorizedError(details=response.text[:200] or None)

        data: dict[str, Any] = response.json()
        user_id = data.get("id")
        if not user_id:
            raise UnauthorizedError(details="identity provider returned no user id")

        return AuthenticatedUser(id=str(user_id), email=data.get("email"), source=self.name)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


class ClaimsIdentityStrategy:
    """
    Decode identity claims straight from the JWT.

    The HS256 signature is always verified. Expired or subject-less tokens
    are rejected.
    """

    name = "claims"

    def __init__(self, jwt_secret: str, leeway_seconds: int = 0) -> None:
        if not jwt_secret:
            raise ValueError("Claims identity requires a JWT secret")
        self.jwt_secret = jwt_secret
        self.leeway_seconds = leeway_seconds

    async def resolve(self, token: str) -> AuthenticatedUser:
        try:
            claims = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                options={"verify_aud": False, "require": ["exp", "sub"]},
                leeway=self.leeway_seconds,
            )
        except jwt.ExpiredSignatureError as exc:
            raise UnauthorizedError(details="token expired") from exc
        except jwt.PyJWTError as exc:
            raise UnauthorizedError(details=f"undecodable token: {exc}") from exc

        subject = claims.get("sub")
        if not subject:
            raise UnauthorizedError(details="token has no subject")

        return AuthenticatedUser(id=str(subject), email=claims.get("email"), source=self.name)


class IdentityResolver:
    """Resolve bearer credentials, optionally falling back to local claims."""

    def __init__(
        self,
        provider: IdentityStrategy,
        fallback: IdentityStrategy | None = None,
    ) -> None:
        self.provider = provider
        self.fallback = fallback

    async def resolve(
        self, authorization: str | None, allow_fallback: bool = False
    ) -> AuthenticatedUser:
        """
        Resolve an Authorization header value to a user.

        Raises:
            UnauthorizedError: Missing credential, or no strategy accepted it
        """
        token = extract_bearer_token(authorization)

        try:
            return await self.provider.resolve(token)
        except IdentityProviderUnavailableError as exc:
            # An explicit rejection by the provider is final; only an
            # unavailable provider falls through to local claims.
            if not allow_fallback or self.fallback is None:
                raise
            logger.info(
                "identity_provider_failed_trying_fallback",
                strategy=self.fallback.name,
                details=exc.details,
            )

        user = await self.fallback.resolve(token)
        logger.info("identity_resolved_from_claims", user_id=user.id)
        return user
