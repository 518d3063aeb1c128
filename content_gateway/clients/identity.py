"""
Identity Provider Client - Bearer Credential Verification

This module resolves a bearer credential to a stable user identifier by
verifying Clerk session tokens (RS256 JWTs) against the instance's JSON Web
Key Set.

Pattern: Strategy pattern - IdentityVerifier interface, provider implementation
Pattern: Cache-aside for signing keys with a single refresh on unknown kid
Anti-Pattern §3.1 Avoided: every failure is logged and mapped to AuthenticationError
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import httpx
import jwt

from content_gateway.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer"
SUPPORTED_ALGORITHMS = ["RS256"]


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the token from an Authorization header value.

    Args:
        authorization: Raw header value (e.g. "Bearer eyJ...")

    Returns:
        The bare token

    Raises:
        AuthenticationError: if the header is missing or not a bearer credential
    """
    if not authorization:
        raise AuthenticationError("Unauthorized: No session found", reason="missing_credential")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != BEARER_PREFIX or not token:
        raise AuthenticationError("Unauthorized: No session found", reason="malformed_credential")
    return token


# =============================================================================
# Identity Verifier Interface
# =============================================================================


class IdentityVerifier(ABC):
    """
    Abstract interface for resolving a credential to an identity.

    Implementations either return a non-empty identity string or raise
    AuthenticationError; they never return an anonymous result.
    """

    @abstractmethod
    async def verify(self, token: str) -> str:
        """
        Verify a bearer token.

        Args:
            token: Bearer credential without the scheme prefix

        Returns:
            Stable user identifier

        Raises:
            AuthenticationError: if the token cannot be verified
        """

    async def aclose(self) -> None:
        """Release any held resources."""
        return None


# =============================================================================
# Clerk Implementation
# =============================================================================


class ClerkIdentityVerifier(IdentityVerifier):
    """
    Verifies Clerk session tokens.

    Signing keys are fetched from ``{api_url}/jwks`` using the instance secret
    key and cached by ``kid``. A token signed with an unknown ``kid`` triggers
    at most one refresh, so key rotation is picked up without refetching on
    every request.

    Example:
        >>> verifier = ClerkIdentityVerifier(secret_key="sk_test_...", http_client=client)
        >>> user_id = await verifier.verify(token)
    """

    def __init__(
        self,
        secret_key: str,
        http_client: httpx.AsyncClient,
        api_url: str = "https://api.clerk.com/v1",
        authorized_parties: Sequence[str] = (),
        jwks_cache_ttl_seconds: int = 3600,
        leeway_seconds: int = 5,
    ) -> None:
        """
        Initialize the verifier.

        Args:
            secret_key: Clerk secret key (empty rejects every request)
            http_client: Client used for JWKS requests (owned by the verifier)
            api_url: Clerk Backend API base URL
            authorized_parties: Allowed values for the azp claim; empty skips the check
            jwks_cache_ttl_seconds: Age after which cached keys are refetched
            leeway_seconds: Clock skew tolerance for time-based claims
        """
        self._secret_key = secret_key
        self._client = http_client
        self._jwks_url = f"{api_url.rstrip('/')}/jwks"
        self._authorized_parties = frozenset(authorized_parties)
        self._cache_ttl = jwks_cache_ttl_seconds
        self._leeway = leeway_seconds
        self._keys: dict[str, Any] = {}
        self._fetched_at: Optional[float] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._secret_key)

    def _cache_is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return time.monotonic() - self._fetched_at > self._cache_ttl

    async def _refresh_keys(self) -> None:
        """Fetch the JWKS and replace the key cache."""
        try:
            response = await self._client.get(
                self._jwks_url,
                headers={"Authorization": f"Bearer {self._secret_key}"},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"JWKS fetch from {self._jwks_url} failed: {type(e).__name__}: {e}")
            raise AuthenticationError(
                "Unauthorized: identity provider unavailable",
                reason="provider_unavailable",
            ) from e

        keys: dict[str, Any] = {}
        for jwk in payload.get("keys", []):
            kid = jwk.get("kid")
            if not kid:
                continue
            try:
                keys[kid] = jwt.PyJWK(jwk).key
            except jwt.PyJWTError as e:
                logger.warning(f"Skipping unusable JWKS key {kid}: {e}")

        self._keys = keys
        self._fetched_at = time.monotonic()
        logger.debug(f"Loaded {len(keys)} signing keys from identity provider")

    async def _signing_key(self, kid: str) -> Any:
        if kid in self._keys and not self._cache_is_stale():
            return self._keys[kid]

        async with self._refresh_lock:
            # Another request may have refreshed while we waited
            if kid not in self._keys or self._cache_is_stale():
                await self._refresh_keys()

        key = self._keys.get(kid)
        if key is None:
            raise AuthenticationError("Unauthorized: unknown signing key", reason="unknown_key")
        return key

    async def verify(self, token: str) -> str:
        if not self.configured:
            raise AuthenticationError(
                "Unauthorized: identity provider not configured",
                reason="provider_not_configured",
            )

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise AuthenticationError("Unauthorized: malformed token", reason="malformed_token") from e

        kid = header.get("kid")
        if not kid:
            raise AuthenticationError("Unauthorized: malformed token", reason="missing_kid")

        key = await self._signing_key(kid)

        try:
            claims = jwt.decode(
                token,
                key=key,
                algorithms=SUPPORTED_ALGORITHMS,
                leeway=self._leeway,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Unauthorized: session expired", reason="expired_token") from e
        except jwt.PyJWTError as e:
            raise AuthenticationError("Unauthorized: invalid token", reason="invalid_token") from e

        if self._authorized_parties:
            azp = claims.get("azp")
            if azp and azp not in self._authorized_parties:
                raise AuthenticationError(
                    "Unauthorized: unauthorized party",
                    reason="unauthorized_party",
                )

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Unauthorized: No session found", reason="missing_subject")
        return subject

    async def aclose(self) -> None:
        await self._client.aclose()
