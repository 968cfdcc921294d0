"""Farcaster QuickAuth token verification.

QuickAuth issues JWTs whose audience is the domain the mini-app runs on and
whose subject is the user's fid. A token minted for one deployment must not
validate on another, so the expected audience is derived from the request
(Origin, then Host, then the configured canonical host).

Signing keys come from the QuickAuth JWKS endpoint and are cached by key id.
An unknown key id triggers one refetch (key rotation), at most once per
min_refresh_seconds so forged key ids cannot drive outbound traffic.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Optional
from urllib.parse import urlsplit

import httpx
import jwt
import structlog

from farpedia.config import Settings
from farpedia.errors import InvalidToken, Unavailable
from farpedia.services.retry import is_transient_http_error

log = structlog.get_logger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if not authorization:
        raise InvalidToken("Missing QuickAuth token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidToken("Missing QuickAuth token")
    return token.strip()


def resolve_request_domain(
    origin: Optional[str],
    host: Optional[str],
    canonical_host: str,
) -> str:
    """Pick the audience domain a token must have been issued for."""
    if origin:
        parsed = urlsplit(origin)
        if parsed.scheme and parsed.netloc:
            return parsed.netloc
        log.warning("invalid_origin_header", origin=origin)
    if host:
        return host
    if "://" not in canonical_host:
        return canonical_host
    return urlsplit(canonical_host).netloc


class QuickAuthVerifier:
    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        algorithms: list[str],
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_refresh_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.jwks_url = jwks_url
        self.issuer = issuer
        self.algorithms = algorithms
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._keys: dict[Optional[str], jwt.PyJWK] = {}
        self._lock = asyncio.Lock()
        self.min_refresh_seconds = min_refresh_seconds
        self._clock = clock
        self._refreshed_at: Optional[float] = None

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "QuickAuthVerifier":
        return cls(
            jwks_url=app_settings.quickauth_jwks_url,
            issuer=app_settings.quickauth_issuer,
            algorithms=app_settings.quickauth_algorithms,
            timeout=app_settings.http_timeout_seconds,
            min_refresh_seconds=app_settings.quickauth_min_refresh_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def verify(self, token: str, domain: str) -> str:
        """Verify token for domain and return the fid it was issued to.

        Raises:
            InvalidToken: malformed, badly signed, expired, wrong audience or
                issuer, or missing subject.
            Unavailable: the signing keys could not be fetched.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise InvalidToken("Malformed QuickAuth token") from exc

        signing_key = await self._signing_key(header.get("kid"))

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=self.algorithms,
                audience=domain,
                issuer=self.issuer,
                # QuickAuth encodes the fid as a number, not a string
                options={"require": ["exp", "sub", "aud", "iss"], "verify_sub": False},
            )
        except jwt.InvalidTokenError as exc:
            log.info("quickauth_token_rejected", domain=domain, reason=type(exc).__name__)
            raise InvalidToken("Invalid QuickAuth token") from exc

        fid = str(claims.get("sub", "")).strip()
        if not fid:
            raise InvalidToken("QuickAuth token missing sub (fid)")
        return fid

    async def _signing_key(self, kid: Optional[str]) -> jwt.PyJWK:
        key = self._lookup(kid)
        if key is None:
            async with self._lock:
                key = self._lookup(kid)
                if key is None and self._may_refresh():
                    await self._refresh_keys()
                    key = self._lookup(kid)
        if key is None:
            raise InvalidToken("QuickAuth token signed with an unknown key")
        return key

    def _may_refresh(self) -> bool:
        if self._refreshed_at is None:
            return True
        if self._clock() - self._refreshed_at >= self.min_refresh_seconds:
            return True
        log.info("quickauth_refresh_throttled")
        return False

    def _lookup(self, kid: Optional[str]) -> Optional[jwt.PyJWK]:
        if kid is None and len(self._keys) == 1:
            return next(iter(self._keys.values()))
        return self._keys.get(kid)

    async def _refresh_keys(self) -> None:
        try:
            response = await self._client.get(self.jwks_url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise Unavailable(
                f"QuickAuth key service returned HTTP {exc.response.status_code}",
                retryable=is_transient_http_error(exc),
            ) from exc
        except httpx.TransportError as exc:
            raise Unavailable("QuickAuth key service unreachable") from exc
        except ValueError as exc:
            raise Unavailable("QuickAuth key service returned a non-JSON body", retryable=False) from exc

        try:
            key_set = jwt.PyJWKSet.from_dict(data)
        except jwt.PyJWKSetError as exc:
            raise Unavailable("QuickAuth key set has no usable keys", retryable=False) from exc

        self._keys = {key.key_id: key for key in key_set.keys}
        self._refreshed_at = self._clock()
        log.info("quickauth_keys_refreshed", key_count=len(self._keys))
